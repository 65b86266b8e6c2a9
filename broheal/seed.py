import uuid

from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError

from broheal.db.session import SessionLocal
from broheal.core.config import settings
from broheal.core.logging import get_logger
from broheal.models.user import User
from broheal.models.setting import Setting

log = get_logger(__name__)


def ensure_user(db: Session, phone: str, role: str, name: str):
    u = db.query(User).filter(User.phone == phone).first()
    if u:
        return
    db.add(User(id=str(uuid.uuid4()), phone=phone, full_name=name, role=role, is_active=True))
    db.commit()


def ensure_setting(db: Session, key: str, value: str):
    if db.get(Setting, key) is None:
        db.add(Setting(key=key, value=value))
        db.commit()


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            ensure_setting(db, "commission_percentage", str(settings.COMMISSION_PERCENTAGE))
            ensure_setting(db, "paytm_mode", settings.PAYTM_MODE)
        except ProgrammingError:
            db.rollback()
            log.warning("seed.skipped", reason="missing_tables")
            return
        if settings.ENV == "local":
            ensure_user(db, "9000000001", "admin", "Local Admin")
        log.info("seed.done")
    finally:
        db.close()
