import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

import uuid
from decimal import Decimal

import pytest
from paytmchecksum import PaytmChecksum
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from broheal.db.session import Base
from broheal.models.user import User
from broheal.models.booking import Booking
from broheal.models.transaction import Transaction  # noqa: F401
from broheal.models.wallet import Wallet  # noqa: F401
from broheal.models.setting import Setting  # noqa: F401
from broheal.models.audit_log import AuditLog  # noqa: F401
from broheal.models.notification_log import NotificationLog  # noqa: F401
from broheal.services.settings_service import set_gateway_config

MERCHANT_ID = "BROHEAL0001"
MERCHANT_KEY = "k3y_f0r_t3sts&16"  # AES key: 16, 24 or 32 characters


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="customer", phone=None, name=""):
        counter["n"] += 1
        u = User(
            id=str(uuid.uuid4()),
            phone=phone or f"98{counter['n']:08d}",
            full_name=name or f"{role}-{counter['n']}",
            role=role,
            is_active=True,
        )
        db.add(u)
        db.commit()
        return u

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("customer")


@pytest.fixture
def therapist(make_user):
    return make_user("therapist")


@pytest.fixture
def make_booking(db, customer, therapist):
    def _make(amount="1000", status="completed", payment_status="pending", user=None, payee=None):
        b = Booking(
            id=str(uuid.uuid4()),
            user_id=(user or customer).id,
            therapist_id=(payee or therapist).id,
            service_name="Deep tissue massage",
            amount=Decimal(amount),
            status=status,
            payment_status=payment_status,
        )
        db.add(b)
        db.commit()
        return b

    return _make


@pytest.fixture
def gateway(db):
    """Configure Paytm through the settings table. Returns a setter to switch mode."""
    def _configure(mode="staging", enabled=True):
        return set_gateway_config(
            db,
            merchant_id=MERCHANT_ID,
            merchant_key=MERCHANT_KEY,
            mode=mode,
            enabled=enabled,
            callback_url="https://api.broheal.test/api/v1/payments/callback",
        )

    _configure()
    return _configure


@pytest.fixture
def signed_callback():
    """Build the form Paytm posts back, signed with the test merchant key."""
    def _build(order_id, amount="1000.00", status="TXN_SUCCESS", txn_id="20261019111212800110168", **extra):
        fields = {
            "MID": MERCHANT_ID,
            "ORDERID": order_id,
            "TXNID": txn_id,
            "TXNAMOUNT": amount,
            "STATUS": status,
            "RESPCODE": "01" if status == "TXN_SUCCESS" else "227",
            "RESPMSG": "Txn Success" if status == "TXN_SUCCESS" else "Your payment has been declined by your bank.",
            "CURRENCY": "INR",
            "PAYMENTMODE": "UPI",
            "BANKTXNID": "",
        }
        fields.update(extra)
        fields["CHECKSUMHASH"] = PaytmChecksum.generateSignature(fields, MERCHANT_KEY)
        return fields

    return _build
