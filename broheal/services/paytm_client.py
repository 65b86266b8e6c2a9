from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Mapping
from urllib.parse import urlencode

from paytmchecksum import PaytmChecksum

GATEWAY_MODES = ("test", "staging", "production")
SUCCESS_STATUS = "TXN_SUCCESS"
CHECKSUM_FIELD = "CHECKSUMHASH"

GATEWAY_HOSTS = {
    "production": "https://securegw.paytm.in",
    "staging": "https://securegw-stage.paytm.in",
}

@dataclass
class PaytmConfig:
    merchant_id: str        # MID
    merchant_key: str       # shared secret used for CHECKSUMHASH
    website: str = "WEB"    # WEBSTAGING on staging
    channel_id: str = "WEB"
    industry_type: str = "Retail"
    callback_url: str = ""
    frontend_url: str = "http://localhost:3000"
    mode: str = "staging"   # test|staging|production
    enabled: bool = True

    @property
    def is_test(self) -> bool:
        return self.mode == "test"

    @property
    def gateway_url(self) -> str:
        base = GATEWAY_HOSTS.get(self.mode, GATEWAY_HOSTS["staging"])
        return f"{base}/order/process"

class PaytmError(RuntimeError):
    pass


def format_amount(amount) -> str:
    """Paytm expects TXN_AMOUNT as a plain two-decimal string."""
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _clean(fields: Mapping) -> dict:
    return {k: ("" if v is None else str(v)) for k, v in fields.items() if k != CHECKSUM_FIELD}


def generate_signature(fields: Mapping, merchant_key: str) -> str:
    """CHECKSUMHASH for ``fields`` via Paytm's checksum library (salted, so it differs on every call)."""
    if not merchant_key:
        raise PaytmError("Paytm merchant key is not configured")
    try:
        return PaytmChecksum.generateSignature(_clean(fields), merchant_key)
    except ValueError as e:
        # AES rejects keys that are not 16, 24 or 32 bytes.
        raise PaytmError(f"Paytm merchant key is unusable: {e}")


def verify_signature(fields: Mapping, merchant_key: str, signature: str) -> bool:
    """Check ``signature`` against the fields. Raises PaytmError if it cannot be decrypted at all."""
    if not merchant_key:
        raise PaytmError("Paytm merchant key is not configured")
    try:
        return bool(PaytmChecksum.verifySignature(_clean(fields), merchant_key, signature))
    except (ValueError, TypeError, IndexError):
        # bad base64, wrong block length, bad padding or undecodable plaintext
        raise PaytmError("Malformed CHECKSUMHASH")


@dataclass(frozen=True)
class CallbackFields:
    """Gateway callback, normalized once from either the query string or the form body."""
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping | None) -> "CallbackFields":
        raw = {}
        for k, v in (data or {}).items():
            raw[str(k)] = "" if v is None else str(v)
        return cls(raw=raw)

    def _first(self, *names: str) -> str | None:
        for n in names:
            v = self.raw.get(n)
            if v:
                return v
        return None

    @property
    def checksum(self) -> str | None:
        return self.raw.get(CHECKSUM_FIELD) or None

    @property
    def signed_fields(self) -> dict:
        return {k: v for k, v in self.raw.items() if k != CHECKSUM_FIELD}

    @property
    def order_id(self) -> str | None:
        return self._first("ORDERID", "ORDER_ID")

    @property
    def gateway_transaction_id(self) -> str | None:
        return self._first("TXNID")

    @property
    def status(self) -> str:
        return self.raw.get("STATUS", "")

    @property
    def amount(self) -> Decimal | None:
        value = self._first("TXNAMOUNT")
        if value is None:
            return None
        try:
            amount = Decimal(value)
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None

    @property
    def amount_present(self) -> bool:
        return bool(self.raw.get("TXNAMOUNT"))

    @property
    def response_code(self) -> str:
        return self.raw.get("RESPCODE", "")

    @property
    def response_message(self) -> str:
        return self.raw.get("RESPMSG", "")


@dataclass(frozen=True)
class CallbackVerification:
    valid: bool
    order_id: str | None = None
    gateway_transaction_id: str | None = None
    amount: Decimal | None = None
    failure_reason: str | None = None
    signature_ok: bool = True


@dataclass(frozen=True)
class PaymentRequest:
    mock_mode: bool
    payment_url: str | None = None
    gateway_url: str | None = None
    fields: dict | None = None


class PaytmClient:
    """Builds signed payment requests and verifies signed callbacks. No I/O."""

    def __init__(self, cfg: PaytmConfig):
        self.cfg = cfg

    def build_payment_request(self, *, order_id: str, customer_id: str, amount, origin_hint: str | None = None) -> PaymentRequest:
        amount_str = format_amount(amount)

        if self.cfg.is_test:
            frontend_base = (origin_hint or self.cfg.frontend_url or "http://localhost:3000").rstrip("/")
            qs = urlencode({"orderId": order_id, "amount": amount_str})
            return PaymentRequest(mock_mode=True, payment_url=f"{frontend_base}/payment/mock?{qs}")

        if not (self.cfg.merchant_id and self.cfg.merchant_key):
            raise PaytmError("Paytm is not configured (missing merchant id or key)")

        params = {
            "MID": self.cfg.merchant_id,
            "WEBSITE": self.cfg.website,
            "INDUSTRY_TYPE_ID": self.cfg.industry_type,
            "CHANNEL_ID": self.cfg.channel_id,
            "ORDER_ID": order_id,
            "CUST_ID": str(customer_id),
            "TXN_AMOUNT": amount_str,
            "CALLBACK_URL": f"{self.cfg.callback_url}?{urlencode({'orderId': order_id})}",
        }
        params[CHECKSUM_FIELD] = generate_signature(params, self.cfg.merchant_key)
        return PaymentRequest(mock_mode=False, gateway_url=self.cfg.gateway_url, fields=params)

    def verify_callback(self, fields: CallbackFields) -> CallbackVerification:
        """Check a callback; anything that cannot be verified comes back ``valid=False``."""
        order_id = fields.order_id

        if fields.checksum is None:
            # The mock payment page has no merchant key; only test mode accepts unsigned callbacks.
            if self.cfg.is_test:
                return self._from_status(fields)
            return CallbackVerification(valid=False, order_id=order_id, failure_reason="Missing CHECKSUMHASH", signature_ok=False)

        try:
            ok = verify_signature(fields.signed_fields, self.cfg.merchant_key, fields.checksum)
        except PaytmError as e:
            return CallbackVerification(valid=False, order_id=order_id, failure_reason=str(e), signature_ok=False)
        if not ok:
            return CallbackVerification(valid=False, order_id=order_id, failure_reason="Invalid checksum", signature_ok=False)

        return self._from_status(fields)

    def _from_status(self, fields: CallbackFields) -> CallbackVerification:
        if fields.status != SUCCESS_STATUS:
            return CallbackVerification(
                valid=False,
                order_id=fields.order_id,
                failure_reason=fields.response_message or "Payment failed",
            )
        return CallbackVerification(
            valid=True,
            order_id=fields.order_id,
            gateway_transaction_id=fields.gateway_transaction_id,
            amount=fields.amount,
        )
