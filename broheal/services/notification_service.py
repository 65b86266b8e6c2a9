from datetime import datetime, timezone
import uuid

import requests
from sqlalchemy.orm import Session

from broheal.core.config import settings
from broheal.core.logging import get_logger
from broheal.models.booking import Booking
from broheal.models.notification_log import NotificationLog
from broheal.models.user import User
from broheal.services.settings_service import get_whatsapp_config

log = get_logger(__name__)


class NotificationError(RuntimeError):
    pass


def queue_whatsapp(db: Session, to_phone: str, body: str, related_booking_id: str = "") -> str:
    """Queue and attempt immediate send. Failed sends stay in the log for the worker to retry."""
    nid = str(uuid.uuid4())
    db.add(NotificationLog(id=nid, to_phone=to_phone, body=body, status="queued", related_booking_id=related_booking_id))
    db.commit()

    entry = db.get(NotificationLog, nid)
    try:
        if send_whatsapp(db, to_phone, body):
            entry.status = "sent"
            entry.sent_at = datetime.now(timezone.utc)
        else:
            entry.status = "skipped"
    except (requests.RequestException, NotificationError) as e:
        log.warning("notification.send_failed", notification_id=nid, error=str(e))
        entry.status = "failed"
        entry.error = str(e)
    db.commit()
    return nid


def send_whatsapp(db: Session, to_phone: str, body: str) -> bool:
    """Send one text message. False when WhatsApp is switched off or has no token, so nothing went out."""
    cfg = get_whatsapp_config(db)
    if not cfg["enabled"] or not cfg["access_token"]:
        log.info("notification.whatsapp_not_configured", to_phone=to_phone)
        return False

    r = requests.post(
        f"{cfg['api_url']}/{cfg['phone_number_id']}/messages",
        json={
            "messaging_product": "whatsapp",
            "to": f"{settings.WHATSAPP_COUNTRY_CODE}{to_phone}",
            "type": "text",
            "text": {"body": body},
        },
        headers={"Authorization": f"Bearer {cfg['access_token']}"},
        timeout=15,
    )
    if r.status_code >= 400:
        raise NotificationError(f"WhatsApp error {r.status_code}: {r.text}")
    return True


def notify_payment_success(db: Session, booking: Booking) -> list[str]:
    """Tell the customer and the therapist that the booking has been paid."""
    queued = []
    customer = db.get(User, booking.user_id) if booking.user_id else None
    therapist = db.get(User, booking.therapist_id) if booking.therapist_id else None

    if customer and customer.whatsapp_reachable:
        body = (
            "Payment received!\n\n"
            f"Amount: Rs.{booking.amount}\n"
            f"Service: {booking.service_name or '-'}\n\n"
            f"Booking ID: {booking.id}"
        )
        queued.append(queue_whatsapp(db, customer.phone, body, related_booking_id=booking.id))

    if therapist and therapist.whatsapp_reachable:
        earned = booking.amount - (booking.commission or 0)
        body = (
            "A booking has been paid.\n\n"
            f"Credited to your wallet: Rs.{earned}\n\n"
            f"Booking ID: {booking.id}"
        )
        queued.append(queue_whatsapp(db, therapist.phone, body, related_booking_id=booking.id))
    return queued


def process_pending_notifications(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed notifications. Returns counts."""
    pending = (
        db.query(NotificationLog)
        .filter(NotificationLog.status.in_(["queued", "failed"]))
        .order_by(NotificationLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, failed, skipped = 0, 0, 0
    for entry in pending:
        try:
            if not send_whatsapp(db, entry.to_phone, entry.body):
                entry.status = "skipped"
                skipped += 1
                continue
            entry.status = "sent"
            entry.sent_at = datetime.now(timezone.utc)
            entry.error = None
            sent += 1
        except (requests.RequestException, NotificationError) as e:
            entry.status = "failed"
            entry.error = str(e)
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed, "skipped": skipped}
