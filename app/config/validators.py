"""Soft configuration checks that warn instead of failing."""

import warnings
from typing import Any, Dict, List, Optional

from .environment import EnvironmentConfig


def check_for_warnings(
    config_dict: Dict[str, Any], env_config: Optional[EnvironmentConfig] = None
) -> List[str]:
    """
    Check configuration for likely mistakes.

    Args:
        config_dict: Raw configuration dictionary
        env_config: Loaded environment configuration, if available

    Returns:
        List of warning messages
    """
    messages = []

    sms = config_dict.get("sms", {}) or {}
    sms_enabled = sms.get("enabled", True) if isinstance(sms, dict) else True
    if sms_enabled and env_config is not None and not env_config.sms_configured:
        messages.append(
            "SMS is enabled but SMS_API_URL/SMS_API_KEY are not set; messages will only be logged"
        )
    if env_config is not None and env_config.sms_fallback_configured and not env_config.sms_configured:
        messages.append("SMS_FALLBACK_API_URL is set without a primary gateway; the fallback will not be used")

    suppliers = config_dict.get("suppliers", {}) or {}
    if isinstance(suppliers, dict):
        brand_group = suppliers.get("brand_group", {}) or {}
        supplier = brand_group.get("supplier") if isinstance(brand_group, dict) else None
        if not supplier:
            messages.append(
                "No dedicated supplier configured for the brand group; "
                "brand-group part orders will not notify anyone"
            )

        table = suppliers.get("suppliers", []) or []
        for entry in table:
            if isinstance(entry, dict) and not entry.get("email") and not entry.get("phone"):
                messages.append(
                    f"Supplier '{entry.get('name', 'Unknown')}' has neither email nor phone"
                )

    email = config_dict.get("email", {}) or {}
    if isinstance(email, dict):
        max_attempts = email.get("max_attempts", 3)
        if isinstance(max_attempts, int) and max_attempts == 1:
            messages.append("email.max_attempts is 1; transient SMTP failures will not be retried")

    return messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message through the warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
