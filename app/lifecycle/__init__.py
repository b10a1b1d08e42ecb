"""Job and spare-part order lifecycles.

Public API:
    - JobLifecycleService: create jobs and apply status transitions
    - PartOrderService: create part orders, apply transitions, drive the linked job
    - SupplierRouter: resolve supplier names to notifiable addresses
    - AuditTrail: read and write the audit log
    - LifecycleEvent / EventType: what the services publish after each commit
"""

from .audit import AuditTrail
from .events import EventType, LifecycleEvent, TransitionResult
from .jobs import JobLifecycleService
from .part_orders import PartOrderService
from .suppliers import SupplierMatch, SupplierRouter
from .transitions import JOB_TRANSITIONS, PART_ORDER_TRANSITIONS, TransitionRule

__all__ = [
    "JobLifecycleService",
    "PartOrderService",
    "SupplierRouter",
    "SupplierMatch",
    "AuditTrail",
    "EventType",
    "LifecycleEvent",
    "TransitionResult",
    "JOB_TRANSITIONS",
    "PART_ORDER_TRANSITIONS",
    "TransitionRule",
]
