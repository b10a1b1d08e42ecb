"""Audit trail for transitions and notification outcomes."""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.domain.models import Actor, AuditEntry
from app.logging import get_logger
from app.persistence import AuditRepository, PersistenceError, get_session
from app.utils.timestamps import utc_now

logger = get_logger(__name__, component="audit")

ACTION_CREATED = "created"
ACTION_TRANSITION = "transition"
ACTION_NOTIFICATION = "notification"
ACTION_DISPATCH_FAILED = "dispatch_failed"


class AuditTrail:
    """Append-only reads and writes of the audit log.

    Transition entries are written through the caller's session so they
    commit together with the state change. Notification entries are written
    from the dispatch workers, each in its own short session.
    """

    def record_transition(
        self,
        session: Session,
        entity_kind: str,
        entity_id: int,
        previous_status: Optional[str],
        new_status: str,
        actor: Actor,
        detail: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            entity_kind=entity_kind,
            entity_id=entity_id,
            action=ACTION_CREATED if previous_status is None else ACTION_TRANSITION,
            detail={
                "from": previous_status,
                "to": new_status,
                "actor_role": actor.role.value,
                "actor_id": actor.id,
                **(detail or {}),
            },
            recorded_at=utc_now(),
        )
        return AuditRepository(session).append(entry)

    def record_notification(self, event, outcome) -> None:
        """Append one channel outcome; failures are logged, never raised."""
        self._append_detached(
            event.entity_kind,
            event.entity_id,
            ACTION_NOTIFICATION,
            {"event_type": event.event_type.value, **outcome.as_dict()},
        )

    def record_dispatch_failure(self, event, error: str) -> None:
        self._append_detached(
            event.entity_kind,
            event.entity_id,
            ACTION_DISPATCH_FAILED,
            {"event_type": event.event_type.value, "error": error},
        )

    def entries_for(self, entity_kind: str, entity_id: int) -> List[AuditEntry]:
        with get_session() as session:
            return AuditRepository(session).list_for_entity(entity_kind, entity_id)

    def _append_detached(self, entity_kind: str, entity_id: int, action: str, detail: Dict[str, Any]) -> None:
        entry = AuditEntry(
            entity_kind=entity_kind,
            entity_id=entity_id,
            action=action,
            detail=detail,
            recorded_at=utc_now(),
        )
        try:
            with get_session() as session:
                AuditRepository(session).append(entry)
        except PersistenceError as e:
            logger.error(
                f"Failed to write {action} audit entry for {entity_kind} {entity_id}: {e}",
                extra={"event": "audit.write_failed", "action": action},
            )
