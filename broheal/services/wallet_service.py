import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from broheal.core.logging import get_logger
from broheal.models.transaction import Transaction
from broheal.models.wallet import Wallet
from broheal.services.audit_service import log_audit
from broheal.services.commission import split_with_current_rate, to_money
from broheal.services.errors import InsufficientBalance, WalletNotFound

log = get_logger(__name__)


@dataclass
class WalletCredit:
    wallet: Wallet
    credited_amount: Decimal
    commission: Decimal


@dataclass
class Withdrawal:
    wallet: Wallet
    transaction: Transaction


def _find_wallet(db: Session, therapist_id: str) -> Wallet | None:
    return db.query(Wallet).filter(Wallet.therapist_id == therapist_id).populate_existing().first()


def get_or_create_wallet(db: Session, therapist_id: str) -> Wallet:
    """Wallets are created lazily, with zero balances, the first time a therapist is credited or looks."""
    wallet = _find_wallet(db, therapist_id)
    if wallet:
        return wallet
    wallet = Wallet(
        id=str(uuid.uuid4()),
        therapist_id=therapist_id,
        balance=Decimal("0"),
        total_earned=Decimal("0"),
        total_withdrawn=Decimal("0"),
    )
    db.add(wallet)
    db.flush()
    return wallet


def get_balance(db: Session, therapist_id: str) -> Wallet:
    wallet = get_or_create_wallet(db, therapist_id)
    db.commit()
    return wallet


def credit_wallet(db: Session, therapist_id: str, booking_id: str, gross_amount) -> WalletCredit:
    """Credit the therapist's share of a settled booking and record the commission.

    The balance change is a single UPDATE with column arithmetic so concurrent
    credits to one wallet cannot lose each other. Nothing is committed here;
    the settlement that calls this owns the unit of work.
    """
    s = split_with_current_rate(db, gross_amount)
    wallet = get_or_create_wallet(db, therapist_id)

    db.execute(
        update(Wallet)
        .where(Wallet.id == wallet.id)
        .values(
            balance=Wallet.balance + s.payee_amount,
            total_earned=Wallet.total_earned + s.payee_amount,
            last_updated=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )

    for kind, amount in (("wallet_credit", s.payee_amount), ("commission", s.commission)):
        db.add(Transaction(
            id=str(uuid.uuid4()),
            booking_id=booking_id,
            user_id=therapist_id,
            therapist_id=therapist_id,
            transaction_type=kind,
            amount=amount,
            payment_mode="wallet",
            status="success",
        ))
    db.flush()
    db.refresh(wallet)

    log.info(
        "wallet.credited",
        therapist_id=therapist_id,
        booking_id=booking_id,
        gross=str(s.gross),
        rate=str(s.rate),
        credited=str(s.payee_amount),
        commission=str(s.commission),
    )
    return WalletCredit(wallet=wallet, credited_amount=s.payee_amount, commission=s.commission)


def process_withdrawal(db: Session, therapist_id: str, amount, bank_details: dict | None = None) -> Withdrawal:
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("withdrawal amount must be > 0")

    wallet = _find_wallet(db, therapist_id)
    if not wallet:
        raise WalletNotFound("Wallet not found")
    if wallet.balance < amount:
        raise InsufficientBalance("Insufficient balance")

    # Guarded decrement: a concurrent withdrawal that drained the wallet makes this match no row.
    res = db.execute(
        update(Wallet)
        .where(Wallet.id == wallet.id, Wallet.balance >= amount)
        .values(
            balance=Wallet.balance - amount,
            total_withdrawn=Wallet.total_withdrawn + amount,
            last_updated=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        raise InsufficientBalance("Insufficient balance")

    txn = Transaction(
        id=str(uuid.uuid4()),
        user_id=therapist_id,
        therapist_id=therapist_id,
        transaction_type="withdrawal",
        amount=amount,
        payment_mode="wallet",
        status="success",
        gateway_response=json.dumps({"bankDetails": bank_details or {}}, default=str),
    )
    db.add(txn)
    log_audit(db, actor_user_id=therapist_id, action="wallet.withdrawal", entity_type="wallet", entity_id=wallet.id,
              details={"amount": str(amount), "transactionId": txn.id})
    db.commit()
    db.refresh(wallet)

    log.info("wallet.withdrawn", therapist_id=therapist_id, amount=str(amount), transaction_id=txn.id)
    return Withdrawal(wallet=wallet, transaction=txn)


def get_transactions(db: Session, therapist_id: str, limit: int = 50) -> list[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.therapist_id == therapist_id)
        .order_by(Transaction.created_at.desc())
        .limit(min(max(limit, 1), 200))
        .all()
    )
