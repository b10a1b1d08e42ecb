"""Scheduling of the periodic SMTP connectivity probe."""

from .service import ProbeScheduler

__all__ = [
    "ProbeScheduler",
]
