"""Audit trail for purchases and project lifecycle."""

from typing import Any

from app.core.logging import get_logger
from app.models.audit_log import AuditLog

log = get_logger(__name__)


async def log_event(
    user_id: Any,
    event_type: str,
    entity_type: str,
    entity_id: Any = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Append to audit_logs collection and mirror to the structured log."""
    entry = AuditLog(
        user_id=str(user_id) if user_id is not None else None,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        metadata=metadata or {},
    )
    await entry.insert()
    log.info("audit", event_type=event_type, entity_type=entity_type, entity_id=entry.entity_id)
    return entry
