from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from broheal.db.session import Base

class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    therapist_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)

    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_earned: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_withdrawn: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
