"""Payment settlement.

A payment attempt moves ``pending -> success`` or ``pending -> failed`` exactly
once. Every transition is a conditional UPDATE on ``status = 'pending'`` so a
replayed or concurrent callback for the same order id is a no-op. On success
the booking, the payment row and the therapist wallet are updated in a single
database transaction; the WhatsApp notification runs after commit and can never
affect the outcome.
"""
import enum
import json
import secrets
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

from sqlalchemy import update
from sqlalchemy.orm import Session

from broheal.core.logging import get_logger
from broheal.models.booking import Booking
from broheal.models.transaction import Transaction
from broheal.services.audit_service import log_audit
from broheal.services.commission import to_money
from broheal.services.errors import GatewayUnavailable, InvalidSignature, NotEligible, NotFound, PaymentError, Unexpected
from broheal.services.notification_service import notify_payment_success
from broheal.services.paytm_client import CallbackFields, PaytmClient, PaytmError
from broheal.services.settings_service import get_gateway_config
from broheal.services.wallet_service import credit_wallet

log = get_logger(__name__)

PAYABLE_BOOKING_STATUSES = ("awaiting_payment", "completed")
# A failed attempt leaves the booking payable again with a fresh order id.
PAYABLE_PAYMENT_STATUSES = ("pending", "failed")


class Compensation(str, enum.Enum):
    APPLIED = "applied"     # pending payment marked failed, booking reverted
    SKIPPED = "skipped"     # payment already terminal, nothing changed
    MISSING = "missing"     # no payment row for the order id
    ERRORED = "errored"     # compensation itself raised; logged


@dataclass
class PaymentInitiation:
    order_id: str
    transaction_id: str
    mock_mode: bool
    payment_url: str | None = None
    gateway_url: str | None = None
    fields: dict | None = None

    def as_dict(self) -> dict:
        out = {"orderId": self.order_id, "transactionId": self.transaction_id, "mockMode": self.mock_mode}
        if self.mock_mode:
            out["paymentUrl"] = self.payment_url
        else:
            out["gatewayUrl"] = self.gateway_url
            out["fields"] = self.fields
        return out


@dataclass
class SettlementOutcome:
    success: bool
    order_id: str
    reason: str = ""
    code: str = ""
    compensation: Compensation | None = None
    duplicate: bool = False
    commission: Decimal | None = None
    error: str = ""  # PaymentError code, empty when the gateway simply declined


@dataclass
class PaymentStatus:
    order_id: str
    gateway_transaction_id: str | None
    status: str
    amount: Decimal
    booking_id: str | None


def new_order_id() -> str:
    # ms timestamp keeps ids sortable; 64 random bits rule out collisions between workers.
    return f"BRO{int(time.time() * 1000)}{secrets.token_hex(8).upper()}"


def _eligible_booking(db: Session, booking_id: str, payer_id: str) -> Booking | None:
    return (
        db.query(Booking)
        .filter(
            Booking.id == booking_id,
            Booking.user_id == payer_id,
            Booking.payment_status.in_(PAYABLE_PAYMENT_STATUSES),
            Booking.status.in_(PAYABLE_BOOKING_STATUSES),
        )
        .first()
    )


def initiate_payment(db: Session, booking_id: str, payer_id: str, gross_amount, origin_hint: str | None = None) -> PaymentInitiation:
    cfg = get_gateway_config(db)
    if not cfg.enabled:
        raise GatewayUnavailable("Payment gateway not configured")

    booking = _eligible_booking(db, booking_id, payer_id)
    if not booking:
        raise NotEligible("Booking not found or not eligible for payment")

    amount = to_money(gross_amount)
    if amount <= 0:
        raise NotEligible("Booking amount must be greater than zero")

    client = PaytmClient(cfg)
    order_id = new_order_id()
    try:
        request = client.build_payment_request(order_id=order_id, customer_id=payer_id, amount=amount, origin_hint=origin_hint)
    except PaytmError as e:
        raise GatewayUnavailable(str(e))

    txn = Transaction(
        id=str(uuid.uuid4()),
        booking_id=booking.id,
        user_id=payer_id,
        therapist_id=booking.therapist_id,
        transaction_type="payment",
        amount=amount,
        payment_mode="paytm",
        status="pending",
        gateway_order_id=order_id,
    )
    db.add(txn)
    booking.payment_order_id = order_id
    booking.payment_mode = "paytm"
    log_audit(db, actor_user_id=payer_id, action="payment.initiated", entity_type="booking", entity_id=booking.id,
              details={"orderId": order_id, "amount": str(amount), "mode": cfg.mode})
    db.commit()

    log.info("payment.initiated", order_id=order_id, booking_id=booking.id, amount=str(amount), mode=cfg.mode)
    return PaymentInitiation(
        order_id=order_id,
        transaction_id=txn.id,
        mock_mode=request.mock_mode,
        payment_url=request.payment_url,
        gateway_url=request.gateway_url,
        fields=request.fields,
    )


def _transition(db: Session, order_id: str, status: str, response: dict, gateway_transaction_id: str | None = None) -> bool:
    """pending -> ``status`` for the payment row of ``order_id``. False when the row is missing or already terminal."""
    values = {"status": status, "gateway_response": json.dumps(response, default=str)}
    if gateway_transaction_id:
        values["gateway_transaction_id"] = gateway_transaction_id
    res = db.execute(
        update(Transaction)
        .where(
            Transaction.gateway_order_id == order_id,
            Transaction.transaction_type == "payment",
            Transaction.status == "pending",
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def _payment_txn(db: Session, order_id: str | None) -> Transaction | None:
    if not order_id:
        return None
    return (
        db.query(Transaction)
        .filter(Transaction.gateway_order_id == order_id, Transaction.transaction_type == "payment")
        .populate_existing()
        .first()
    )


def _mark_failed(db: Session, order_id: str | None, fields: CallbackFields, reason: str) -> Compensation:
    """Best-effort: fail the pending payment and put the booking back to awaiting payment."""
    try:
        txn = _payment_txn(db, order_id)
        if not txn:
            return Compensation.MISSING
        if not _transition(db, order_id, "failed", fields.raw):
            return Compensation.SKIPPED
        booking = db.get(Booking, txn.booking_id) if txn.booking_id else None
        if booking:
            booking.payment_status = "failed"
            booking.status = "awaiting_payment"
        log_audit(db, actor_user_id="paytm", action="payment.failed", entity_type="transaction", entity_id=txn.id,
                  details={"orderId": order_id, "reason": reason})
        db.commit()
        return Compensation.APPLIED
    except Exception:
        db.rollback()
        log.exception("payment.compensation_failed", order_id=order_id)
        return Compensation.ERRORED


def _failure(db: Session, order_id: str | None, fields: CallbackFields, reason: str, error: str = "") -> SettlementOutcome:
    compensation = _mark_failed(db, order_id, fields, reason)
    log.warning("payment.callback_rejected", order_id=order_id, reason=reason, compensation=compensation.value)
    return SettlementOutcome(
        success=False,
        order_id=order_id or "unknown",
        reason=reason,
        code=fields.response_code,
        compensation=compensation,
        error=error,
    )


def reconcile_callback(db: Session, params: Mapping | None, fallback_order_id: str | None = None) -> SettlementOutcome:
    """Settle a gateway callback (GET query or POST form). Never raises; failures come back as outcomes."""
    fields = CallbackFields.from_mapping(params)
    order_id = fields.order_id or fallback_order_id

    try:
        client = PaytmClient(get_gateway_config(db))
        verification = client.verify_callback(fields)
        order_id = verification.order_id or order_id

        if not verification.valid:
            error = "" if verification.signature_ok else InvalidSignature.code
            return _failure(db, order_id, fields, verification.failure_reason or "Payment failed", error)

        txn = _payment_txn(db, order_id)
        if not txn:
            log.warning("payment.callback_unknown_order", order_id=order_id)
            return SettlementOutcome(success=False, order_id=order_id or "unknown", reason="Transaction not found",
                                     code=fields.response_code, compensation=Compensation.MISSING, error=NotFound.code)

        if txn.status == "success":
            log.info("payment.callback_duplicate", order_id=order_id)
            return SettlementOutcome(success=True, order_id=order_id, duplicate=True)
        if txn.status == "failed":
            return SettlementOutcome(success=False, order_id=order_id, reason="Transaction already failed",
                                     code=fields.response_code, compensation=Compensation.SKIPPED, duplicate=True)

        # A TXNAMOUNT that is present but unreadable counts as a mismatch.
        if fields.amount_present and verification.amount != txn.amount:
            return _failure(db, order_id, fields, "Amount mismatch")

        return _settle(db, txn, fields, verification.gateway_transaction_id)
    except Exception as e:
        db.rollback()
        log.exception("payment.settlement_error", order_id=order_id)
        return SettlementOutcome(success=False, order_id=order_id or "unknown",
                                 reason=str(e) or "Unhandled error", code=fields.response_code,
                                 error=e.code if isinstance(e, PaymentError) else Unexpected.code)


def _settle(db: Session, txn: Transaction, fields: CallbackFields, gateway_transaction_id: str | None) -> SettlementOutcome:
    order_id = txn.gateway_order_id
    # The mock payment page may omit TXNID; the booking still gets a reference.
    gateway_transaction_id = gateway_transaction_id or f"TXN{int(time.time() * 1000)}"
    if not _transition(db, order_id, "success", fields.raw, gateway_transaction_id):
        # Lost the race to a concurrent callback for the same order.
        db.rollback()
        current = _payment_txn(db, order_id)
        ok = bool(current and current.status == "success")
        return SettlementOutcome(success=ok, order_id=order_id, duplicate=True,
                                 reason="" if ok else "Transaction already failed", code=fields.response_code)

    booking = db.get(Booking, txn.booking_id) if txn.booking_id else None
    if not booking:
        raise NotFound(f"Booking for order {order_id} not found")
    booking.payment_status = "success"
    booking.status = "completed"
    booking.payment_transaction_id = gateway_transaction_id

    commission = None
    if booking.therapist_id:
        credit = credit_wallet(db, booking.therapist_id, booking.id, booking.amount)
        commission = credit.commission
        booking.commission = commission
    else:
        log.warning("payment.no_payee", order_id=order_id, booking_id=booking.id)

    log_audit(db, actor_user_id="paytm", action="payment.settled", entity_type="booking", entity_id=booking.id,
              details={"orderId": order_id, "gatewayTransactionId": gateway_transaction_id,
                       "commission": str(commission) if commission is not None else None})
    db.commit()
    log.info("payment.settled", order_id=order_id, booking_id=booking.id, commission=str(commission))

    _notify(db, booking)
    return SettlementOutcome(success=True, order_id=order_id, commission=commission)


def _notify(db: Session, booking: Booking) -> None:
    try:
        notify_payment_success(db, booking)
    except Exception:
        db.rollback()
        log.exception("payment.notification_failed", booking_id=booking.id)


def verify_status(db: Session, order_id: str) -> PaymentStatus:
    txn = _payment_txn(db, order_id)
    if not txn:
        raise NotFound("Transaction not found")
    return PaymentStatus(
        order_id=txn.gateway_order_id,
        gateway_transaction_id=txn.gateway_transaction_id,
        status=txn.status,
        amount=txn.amount,
        booking_id=txn.booking_id,
    )
