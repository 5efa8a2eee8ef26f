from __future__ import annotations

import logging
from typing import Any

from attendance_admin.models import AUDIT_LOGS_COLLECTION
from attendance_admin.store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger("attendance_admin.audit")


def log_audit(
    store: DocumentStore,
    *,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    entry = {
        "ts": SERVER_TIMESTAMP,
        "actorId": actor_id,
        "action": action,
        "entityType": entity_type,
        "entityId": entity_id,
        "success": success,
        "details": details or {},
        "requestId": request_id,
    }
    try:
        store.add(AUDIT_LOGS_COLLECTION, entry)
    except Exception:
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_id": actor_id,
                "success": success,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
        },
    )
