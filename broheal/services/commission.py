from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from broheal.services.settings_service import get_commission_percentage

CENT = Decimal("0.01")


@dataclass(frozen=True)
class Split:
    gross: Decimal
    rate: Decimal
    commission: Decimal
    payee_amount: Decimal


def to_money(value) -> Decimal:
    """Coerce ints, strings and Decimals to a Decimal; floats go through str() to keep their printed value."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def split(gross, rate) -> Split:
    """Split ``gross`` into the platform commission and what the therapist keeps.

    The commission is rounded half-up to the cent and the payee amount is the
    remainder, so ``commission + payee_amount == gross`` always holds.
    """
    gross = to_money(gross)
    rate = to_money(rate)
    if gross < 0:
        raise ValueError("gross amount must be >= 0")
    if rate < 0 or rate > 100:
        raise ValueError("commission rate must be between 0 and 100")
    commission = (gross * rate / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return Split(gross=gross, rate=rate, commission=commission, payee_amount=gross - commission)


def split_with_current_rate(db: Session, gross) -> Split:
    return split(gross, get_commission_percentage(db))
