from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest
from paytmchecksum import PaytmChecksum

from broheal.services.paytm_client import (
    CallbackFields,
    PaytmClient,
    PaytmConfig,
    PaytmError,
    format_amount,
    generate_signature,
    verify_signature,
)
from conftest import MERCHANT_ID, MERCHANT_KEY


def _client(mode="staging", **kw) -> PaytmClient:
    cfg = PaytmConfig(
        merchant_id=kw.pop("merchant_id", MERCHANT_ID),
        merchant_key=kw.pop("merchant_key", MERCHANT_KEY),
        callback_url="https://api.broheal.test/api/v1/payments/callback",
        frontend_url="http://frontend.test",
        mode=mode,
        **kw,
    )
    return PaytmClient(cfg)


@pytest.mark.parametrize("amount,expected", [(1000, "1000.00"), ("99.5", "99.50"), (Decimal("0.1"), "0.10"), (12.345, "12.35")])
def test_format_amount_two_decimals(amount, expected):
    assert format_amount(amount) == expected


def test_test_mode_returns_mock_payment_url():
    req = _client("test").build_payment_request(order_id="BRO1", customer_id="u1", amount=1000)
    assert req.mock_mode is True
    url = urlparse(req.payment_url)
    assert url.netloc == "frontend.test"
    assert url.path == "/payment/mock"
    assert parse_qs(url.query) == {"orderId": ["BRO1"], "amount": ["1000.00"]}


def test_test_mode_prefers_origin_hint():
    req = _client("test").build_payment_request(order_id="BRO1", customer_id="u1", amount=5, origin_hint="https://app.broheal.in/")
    assert req.payment_url.startswith("https://app.broheal.in/payment/mock?")


@pytest.mark.parametrize("mode,host", [("staging", "securegw-stage.paytm.in"), ("production", "securegw.paytm.in")])
def test_gateway_request_is_signed(mode, host):
    req = _client(mode).build_payment_request(order_id="BRO42", customer_id="cust-7", amount="250")
    assert req.mock_mode is False
    assert req.gateway_url == f"https://{host}/order/process"
    f = dict(req.fields)
    assert f["MID"] == MERCHANT_ID
    assert f["ORDER_ID"] == "BRO42"
    assert f["CUST_ID"] == "cust-7"
    assert f["TXN_AMOUNT"] == "250.00"
    assert f["CALLBACK_URL"].endswith("/payments/callback?orderId=BRO42")
    checksum = f.pop("CHECKSUMHASH")
    assert PaytmChecksum.verifySignature(dict(f), MERCHANT_KEY, checksum)


def test_gateway_request_requires_credentials():
    with pytest.raises(PaytmError):
        _client("production", merchant_key="").build_payment_request(order_id="X", customer_id="u", amount=1)


def test_verify_valid_success(signed_callback):
    v = _client().verify_callback(CallbackFields.from_mapping(signed_callback("BRO9", amount="1000.00")))
    assert v.valid is True
    assert v.order_id == "BRO9"
    assert v.gateway_transaction_id == "20261019111212800110168"
    assert v.amount == Decimal("1000.00")
    assert v.failure_reason is None


def test_verify_missing_checksum(signed_callback):
    params = signed_callback("BRO9")
    del params["CHECKSUMHASH"]
    v = _client().verify_callback(CallbackFields.from_mapping(params))
    assert v.valid is False
    assert v.failure_reason == "Missing CHECKSUMHASH"
    assert v.signature_ok is False
    assert v.order_id == "BRO9"


def test_verify_malformed_checksum(signed_callback):
    params = signed_callback("BRO9")
    params["CHECKSUMHASH"] = "not base64 !!"
    v = _client().verify_callback(CallbackFields.from_mapping(params))
    assert v.valid is False
    assert v.failure_reason == "Malformed CHECKSUMHASH"


def test_flipping_any_field_value_invalidates(signed_callback):
    params = signed_callback("BRO9")
    client = _client()
    for key in params:
        if key == "CHECKSUMHASH":
            continue
        tampered = dict(params)
        value = tampered[key]
        tampered[key] = (value[:-1] + ("X" if value[-1:] != "X" else "Y")) if value else "Z"
        v = client.verify_callback(CallbackFields.from_mapping(tampered))
        assert v.valid is False, key
        assert v.failure_reason == "Invalid checksum"


def test_different_field_set_invalidates(signed_callback):
    params = signed_callback("BRO9")
    client = _client()

    extra = dict(params, GATEWAYNAME="HDFC")
    assert client.verify_callback(CallbackFields.from_mapping(extra)).valid is False

    missing = dict(params)
    del missing["CURRENCY"]
    assert client.verify_callback(CallbackFields.from_mapping(missing)).valid is False

    renamed = dict(params)
    renamed["currency"] = renamed.pop("CURRENCY")
    assert client.verify_callback(CallbackFields.from_mapping(renamed)).valid is False


def test_signature_with_wrong_key_is_rejected(signed_callback):
    params = signed_callback("BRO9")
    params["CHECKSUMHASH"] = generate_signature(params, "s0meone_elses_k3")
    assert _client().verify_callback(CallbackFields.from_mapping(params)).valid is False


def test_signed_failure_status_is_not_valid(signed_callback):
    params = signed_callback("BRO9", status="TXN_FAILURE")
    v = _client().verify_callback(CallbackFields.from_mapping(params))
    assert v.valid is False
    assert v.failure_reason == "Your payment has been declined by your bank."
    assert v.signature_ok is True


def test_none_values_are_signed_as_empty_strings(signed_callback):
    params = signed_callback("BRO9")
    params["BANKTXNID"] = None
    assert CallbackFields.from_mapping(params).raw["BANKTXNID"] == ""
    assert _client().verify_callback(CallbackFields.from_mapping(params)).valid is True


def test_test_mode_accepts_unsigned_mock_callback():
    params = {"ORDERID": "BRO9", "STATUS": "TXN_SUCCESS", "TXNAMOUNT": "1000.00", "TXNID": "MOCK1"}
    v = _client("test").verify_callback(CallbackFields.from_mapping(params))
    assert v.valid is True
    assert v.gateway_transaction_id == "MOCK1"


def test_test_mode_still_checks_a_present_checksum(signed_callback):
    params = signed_callback("BRO9")
    params["TXNAMOUNT"] = "1.00"
    v = _client("test").verify_callback(CallbackFields.from_mapping(params))
    assert v.valid is False
    assert v.failure_reason == "Invalid checksum"


def test_unsigned_callback_outside_test_mode_fails_closed():
    params = {"ORDERID": "BRO9", "STATUS": "TXN_SUCCESS", "TXNAMOUNT": "1000.00"}
    for mode in ("staging", "production"):
        assert _client(mode).verify_callback(CallbackFields.from_mapping(params)).valid is False


def test_callback_fields_accept_order_id_alias():
    f = CallbackFields.from_mapping({"ORDER_ID": "BRO5", "TXNAMOUNT": "abc"})
    assert f.order_id == "BRO5"
    assert f.amount is None
    assert f.amount_present is True
    assert f.checksum is None
    assert CallbackFields.from_mapping({"TXNAMOUNT": "NaN"}).amount is None
    assert CallbackFields.from_mapping({"ORDERID": "BRO5"}).amount_present is False


def test_signatures_are_salted_but_all_verify():
    fields = {"MID": MERCHANT_ID, "ORDER_ID": "BRO1", "TXN_AMOUNT": "10.00"}
    first = generate_signature(fields, MERCHANT_KEY)
    second = generate_signature(fields, MERCHANT_KEY)
    assert first != second
    assert verify_signature(fields, MERCHANT_KEY, first)
    assert verify_signature(fields, MERCHANT_KEY, second)


def test_checksum_from_paytm_library_is_accepted():
    params = {"MID": MERCHANT_ID, "ORDERID": "BRO77", "TXNID": "T1", "TXNAMOUNT": "10.00",
              "STATUS": "TXN_SUCCESS", "RESPCODE": "01", "RESPMSG": "Txn Success"}
    params["CHECKSUMHASH"] = PaytmChecksum.generateSignature(dict(params), MERCHANT_KEY)

    v = _client("production").verify_callback(CallbackFields.from_mapping(params))

    assert v.valid is True
    assert v.order_id == "BRO77"


def test_verify_signature_does_not_mutate_callback(signed_callback):
    params = signed_callback("BRO9")
    fields = CallbackFields.from_mapping(params)
    _client().verify_callback(fields)
    assert "CHECKSUMHASH" in fields.raw


@pytest.mark.parametrize("key", ["short", "seventeen-chars-x"])
def test_unusable_merchant_key_is_a_gateway_error(key):
    with pytest.raises(PaytmError):
        _client("production", merchant_key=key).build_payment_request(order_id="X", customer_id="u", amount=1)


def test_truncated_checksum_is_malformed(signed_callback):
    params = signed_callback("BRO9")
    params["CHECKSUMHASH"] = "Zm9v"
    v = _client().verify_callback(CallbackFields.from_mapping(params))
    assert v.valid is False
    assert v.failure_reason == "Malformed CHECKSUMHASH"
    assert v.signature_ok is False
