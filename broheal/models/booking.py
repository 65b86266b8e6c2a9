from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from broheal.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    user_id: Mapped[str] = mapped_column(String(36), index=True)       # customer
    therapist_id: Mapped[str] = mapped_column(String(36), index=True, nullable=True)
    service_name: Mapped[str] = mapped_column(String(120), default="")

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))  # gross
    commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(30), default="pending")  # pending, accepted, awaiting_payment, completed, cancelled
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, success, failed
    payment_mode: Mapped[str] = mapped_column(String(20), nullable=True)
    payment_order_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    payment_transaction_id: Mapped[str] = mapped_column(String(120), nullable=True)

    booking_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
