#!/usr/bin/env python3
"""Simple script to verify config.example.yaml structure without installing the package."""

import yaml
from pathlib import Path

KNOWN_SECTIONS = ['email', 'sms', 'suppliers', 'dispatch', 'logging']


def verify_config_structure(config_file: Path = Path("config.example.yaml")):
    """Verify config.example.yaml has the expected structure."""
    if not config_file.exists():
        print(f"✗ {config_file} not found")
        return False

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    except Exception as e:
        print(f"✗ Failed to parse {config_file}: {e}")
        return False

    errors = []

    if not isinstance(config, dict):
        print(f"✗ {config_file} must contain a mapping at the top level")
        return False

    for key in config:
        if key not in KNOWN_SECTIONS:
            errors.append(f"Unknown section: {key}")

    for key in KNOWN_SECTIONS:
        if key in config and not isinstance(config[key], dict):
            errors.append(f"'{key}' must be a dictionary")

    suppliers = config.get('suppliers') or {}
    if isinstance(suppliers, dict):
        entries = suppliers.get('suppliers') or []
        if not isinstance(entries, list):
            errors.append("'suppliers.suppliers' must be a list")
            entries = []

        seen = set()
        for idx, entry in enumerate(entries):
            if not isinstance(entry, dict) or not entry.get('name'):
                errors.append(f"Supplier {idx} needs a name")
                continue
            name = str(entry['name']).strip().lower()
            if name in seen:
                errors.append(f"Supplier {idx} duplicates name: {entry['name']}")
            seen.add(name)
            if not entry.get('email') and not entry.get('phone'):
                errors.append(f"Supplier {entry['name']} has neither email nor phone")

        brand_group = suppliers.get('brand_group') or {}
        if isinstance(brand_group, dict) and not isinstance(brand_group.get('brands', []), list):
            errors.append("'suppliers.brand_group.brands' must be a list")

    dispatch = config.get('dispatch') or {}
    if isinstance(dispatch, dict) and dispatch.get('mode', 'background') not in ('background', 'inline'):
        errors.append(f"Invalid dispatch mode: {dispatch.get('mode')}")

    email = config.get('email') or {}
    if isinstance(email, dict):
        base = email.get('base_delay_ms', 1000)
        cap = email.get('max_delay_ms', 30000)
        if isinstance(base, int) and isinstance(cap, int) and cap < base:
            errors.append("email.max_delay_ms must be >= email.base_delay_ms")

    sms = config.get('sms') or {}
    if isinstance(sms, dict) and 'country_code' in sms:
        code = str(sms['country_code']).lstrip('+')
        if not code.isdigit():
            errors.append(f"Invalid sms.country_code: {sms['country_code']}")
    if isinstance(sms, dict):
        delay = sms.get('fallback_delay_seconds', 5)
        if not isinstance(delay, (int, float)) or delay < 0:
            errors.append(f"Invalid sms.fallback_delay_seconds: {delay}")

    if errors:
        print(f"✗ {config_file} validation failed:")
        for error in errors:
            print(f"  - {error}")
        return False

    print(f"✓ {config_file} structure is valid")
    print(f"  - {len(suppliers.get('suppliers') or [])} suppliers configured")
    brand_group = suppliers.get('brand_group') or {}
    print(f"  - Brand group: {brand_group.get('name', 'Com Plus')} ({len(brand_group.get('brands') or [])} brands)")
    print(f"  - Dispatch mode: {dispatch.get('mode', 'background')}")
    print(f"  - Periodic SMTP probe: every {email.get('verify_interval_minutes', 0)} minutes (0 = off)")
    return True


if __name__ == "__main__":
    import sys
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml")
    success = verify_config_structure(path)
    sys.exit(0 if success else 1)
