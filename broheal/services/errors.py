class PaymentError(RuntimeError):
    """Base for settlement and ledger failures; ``code`` is the stable machine-readable name."""

    code = "unexpected"


class NotEligible(PaymentError):
    code = "not_eligible"


class NotFound(PaymentError):
    code = "not_found"


class WalletNotFound(NotFound):
    code = "wallet_not_found"


class InvalidSignature(PaymentError):
    code = "invalid_signature"


class InsufficientBalance(PaymentError):
    code = "insufficient_balance"


class GatewayUnavailable(PaymentError):
    code = "gateway_unavailable"


class Unexpected(PaymentError):
    code = "unexpected"
