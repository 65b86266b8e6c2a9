from decimal import Decimal
from pydantic import BaseModel
from typing import Optional


class InitiatePaymentRequest(BaseModel):
    bookingId: str


class PaymentStatusOut(BaseModel):
    orderId: str
    transactionId: Optional[str] = None  # gateway TXNID, set once paid
    status: str
    amount: Decimal
    bookingId: Optional[str] = None
