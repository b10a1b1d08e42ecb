"""Shared fakes and builders for the field service coordinator tests."""

from .events import make_event, resolved_supplier, sample_job, sample_part_order
from .fakes import (
    RecordingSMTPClient,
    ScriptedSMSProvider,
    admin_actor,
    make_env_config,
    technician_actor,
    temp_database,
)

__all__ = [
    "RecordingSMTPClient",
    "ScriptedSMSProvider",
    "make_env_config",
    "temp_database",
    "admin_actor",
    "technician_actor",
    "make_event",
    "sample_job",
    "sample_part_order",
    "resolved_supplier",
]
