from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError

from broheal.core.logging import get_logger
from broheal.db.session import SessionLocal
from broheal.services.notification_service import process_pending_notifications

log = get_logger(__name__)


def process_notification_queue(limit: int = 50, session_factory=SessionLocal) -> dict:
    """Retry queued/failed WhatsApp notifications. Run periodically via Celery beat."""
    db: Session = session_factory()
    try:
        try:
            result = process_pending_notifications(db, limit=limit)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        log.info("notifications.processed", **result)
        return result
    finally:
        db.close()
