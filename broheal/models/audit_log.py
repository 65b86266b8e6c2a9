from sqlalchemy import String, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from broheal.db.session import Base

class AuditLog(Base):
    """Append-only trail of money movements and settings edits."""
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    actor_user_id: Mapped[str] = mapped_column(String(36), index=True)  # user id, or "paytm" for gateway callbacks
    action: Mapped[str] = mapped_column(String(80), index=True)  # payment.settled, wallet.withdrawal, setting.paytm
    entity_type: Mapped[str] = mapped_column(String(40))  # booking, transaction, wallet, setting
    entity_id: Mapped[str] = mapped_column(String(64))
    details_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
