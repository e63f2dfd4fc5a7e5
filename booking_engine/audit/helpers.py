from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from booking_engine.models.audit_log import AuditLog


def record_audit(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str | None,
    action: str,
    entity: str,
    entity_id: str | None,
    details: dict[str, Any] | None = None,
) -> None:
    """Inclui o log na MESMA transação da escrita que ele descreve."""
    log = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        details=details,
        timestamp_utc=datetime.now(UTC),
    )
    db.add(log)
