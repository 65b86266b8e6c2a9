from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class BankDetails(BaseModel):
    accountHolderName: str = Field(default="")
    accountNumber: str = Field(default="")
    ifscCode: str = Field(default="")
    bankName: str = Field(default="")
    upiId: str = Field(default="")


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    bankDetails: BankDetails = Field(default_factory=BankDetails)


class WalletOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    therapist_id: str
    balance: Decimal
    total_earned: Decimal
    total_withdrawn: Decimal
    last_updated: Optional[datetime] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: Optional[str] = None
    transaction_type: str
    amount: Decimal
    status: str
    payment_mode: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
