import requests

from broheal.models.notification_log import NotificationLog
from broheal.services import notification_service
from broheal.services.notification_service import NotificationError, queue_whatsapp
from broheal.services.settings_service import set_value
from broheal.tasks.celery_app import _redis_url_for_celery
from broheal.tasks.worker_jobs import process_notification_queue


class _Resp:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


def _enable_whatsapp(db):
    set_value(db, "whatsapp_access_token", "wa-token")
    set_value(db, "whatsapp_phone_number_id", "10001")
    db.commit()


def test_queue_without_whatsapp_config_is_logged_as_skipped(db, monkeypatch):
    def _unexpected(*a, **k):
        raise AssertionError("no request should be made")

    monkeypatch.setattr(notification_service.requests, "post", _unexpected)
    nid = queue_whatsapp(db, "9800000001", "hello", related_booking_id="b-1")
    entry = db.get(NotificationLog, nid)
    assert entry.status == "skipped"
    assert entry.sent_at is None


def test_skipped_entries_are_not_retried(db, session_factory):
    queue_whatsapp(db, "9800000001", "hello")
    assert process_notification_queue(session_factory=session_factory)["processed"] == 0


def test_queued_entry_is_skipped_when_whatsapp_is_switched_off(db, session_factory):
    db.add(NotificationLog(id="n-1", to_phone="9800000001", body="hi", status="failed"))
    db.commit()

    result = process_notification_queue(session_factory=session_factory)

    assert result == {"processed": 1, "sent": 0, "failed": 0, "skipped": 1}
    db.expire_all()
    assert db.get(NotificationLog, "n-1").status == "skipped"


def test_send_posts_to_cloud_api(db, monkeypatch):
    _enable_whatsapp(db)
    calls = []

    def _post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers))
        return _Resp(200)

    monkeypatch.setattr(notification_service.requests, "post", _post)
    nid = queue_whatsapp(db, "9800000001", "hello")

    assert db.get(NotificationLog, nid).status == "sent"
    url, body, headers = calls[0]
    assert url == "https://graph.facebook.com/v18.0/10001/messages"
    assert body["to"] == "919800000001"
    assert body["text"] == {"body": "hello"}
    assert headers["Authorization"] == "Bearer wa-token"


def test_failed_send_stays_in_log(db, monkeypatch):
    _enable_whatsapp(db)
    monkeypatch.setattr(notification_service.requests, "post", lambda *a, **k: _Resp(401, "bad token"))

    nid = queue_whatsapp(db, "9800000001", "hello")

    entry = db.get(NotificationLog, nid)
    assert entry.status == "failed"
    assert "401" in entry.error


def test_queue_processor_retries_failed_entries(db, session_factory, monkeypatch):
    _enable_whatsapp(db)

    def _down(*a, **k):
        raise requests.ConnectionError("graph api unreachable")

    monkeypatch.setattr(notification_service.requests, "post", _down)
    first = queue_whatsapp(db, "9800000001", "one")
    second = queue_whatsapp(db, "9800000002", "two")

    monkeypatch.setattr(notification_service.requests, "post", lambda *a, **k: _Resp(200))
    result = process_notification_queue(limit=10, session_factory=session_factory)

    assert result == {"processed": 2, "sent": 2, "failed": 0, "skipped": 0}
    db.expire_all()
    assert {db.get(NotificationLog, first).status, db.get(NotificationLog, second).status} == {"sent"}
    assert db.get(NotificationLog, first).error is None


def test_queue_processor_counts_repeated_failures(db, session_factory, monkeypatch):
    _enable_whatsapp(db)

    def _fail(*a, **k):
        raise NotificationError("WhatsApp error 500: boom")

    monkeypatch.setattr(notification_service, "send_whatsapp", _fail)
    queue_whatsapp(db, "9800000001", "one")

    assert process_notification_queue(session_factory=session_factory) == {"processed": 1, "sent": 0, "failed": 1, "skipped": 0}


def test_queue_processor_with_nothing_to_do(session_factory):
    assert process_notification_queue(session_factory=session_factory) == {"processed": 0, "sent": 0, "failed": 0, "skipped": 0}


def test_celery_redis_url_gets_cert_reqs_for_tls():
    assert _redis_url_for_celery("redis://localhost:6379/0") == "redis://localhost:6379/0"
    assert _redis_url_for_celery("rediss://h:6380/0") == "rediss://h:6380/0?ssl_cert_reqs=CERT_NONE"
    assert _redis_url_for_celery("rediss://h:6380/0?ssl_cert_reqs=CERT_REQUIRED").endswith("CERT_REQUIRED")
