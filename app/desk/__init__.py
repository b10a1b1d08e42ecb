"""Inbound control surface for jobs and part orders."""

from .service import DeskResult, ServiceDesk, build_service_desk, build_sms_provider

__all__ = [
    "ServiceDesk",
    "DeskResult",
    "build_service_desk",
    "build_sms_provider",
]
