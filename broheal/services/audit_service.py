import json
import uuid

from sqlalchemy.orm import Session

from broheal.models.audit_log import AuditLog


def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str,
              details: dict | None = None) -> AuditLog:
    """Stage an audit row in the caller's unit of work; it commits or rolls back with the change it describes."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(entry)
    return entry


def audit_trail(db: Session, entity_type: str, entity_id: str) -> list[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.asc())
        .all()
    )
