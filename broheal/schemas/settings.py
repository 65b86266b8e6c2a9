from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Literal, Optional


class CommissionIn(BaseModel):
    percentage: Decimal = Field(ge=0, le=100)


class PaytmSettingsIn(BaseModel):
    merchantId: Optional[str] = None
    merchantKey: Optional[str] = None
    mode: Optional[Literal["test", "staging", "production"]] = None
    enabled: Optional[bool] = None
    website: Optional[str] = None
    callbackUrl: Optional[str] = None


class PaytmSettingsOut(BaseModel):
    merchantId: str
    merchantKeySet: bool
    mode: str
    enabled: bool
    website: str
    callbackUrl: str
