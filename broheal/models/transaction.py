from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from broheal.db.session import Base

TRANSACTION_TYPES = ("payment", "wallet_credit", "commission", "withdrawal")
TRANSACTION_STATUSES = ("pending", "success", "failed")

class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True, nullable=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)  # payer, or the therapist for ledger rows
    therapist_id: Mapped[str] = mapped_column(String(36), index=True, nullable=True)

    transaction_type: Mapped[str] = mapped_column(String(20), index=True)  # payment, wallet_credit, commission, withdrawal
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_mode: Mapped[str] = mapped_column(String(20), default="wallet")  # paytm, wallet
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, success, failed

    gateway_order_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=True)
    gateway_transaction_id: Mapped[str] = mapped_column(String(120), nullable=True)
    gateway_response: Mapped[str] = mapped_column(Text, nullable=True)  # JSON, captured on status change

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
