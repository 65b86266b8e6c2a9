from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from broheal.api.deps import require_roles
from broheal.core.config import settings
from broheal.db.session import get_db
from broheal.models.booking import Booking
from broheal.models.user import User
from broheal.schemas.payments import InitiatePaymentRequest, PaymentStatusOut
from broheal.services.errors import GatewayUnavailable, NotEligible, NotFound
from broheal.services.payment_service import SettlementOutcome, initiate_payment, reconcile_callback, verify_status

router = APIRouter(tags=["payments"])


def _outcome_redirect(outcome: SettlementOutcome) -> RedirectResponse:
    base = settings.FRONTEND_URL.rstrip("/")
    order_id = quote(outcome.order_id or "unknown", safe="")
    if outcome.success:
        return RedirectResponse(url=f"{base}/payment/success/{order_id}", status_code=303)
    # Forged or truncated callbacks carry no RESPCODE; fall back to our own error code.
    qs = urlencode({"reason": outcome.reason or "Payment failed", "code": outcome.code or outcome.error or ""})
    return RedirectResponse(url=f"{base}/payment/failure/{order_id}?{qs}", status_code=303)


@router.post("/payments/initiate")
def initiate(body: InitiatePaymentRequest, request: Request, db: Session = Depends(get_db),
             user: User = Depends(require_roles("customer"))):
    b = db.get(Booking, body.bookingId)
    if not b:
        raise HTTPException(status_code=404, detail="Booking not found or not eligible for payment")
    try:
        result = initiate_payment(db, b.id, user.id, b.amount, request.headers.get("origin"))
    except NotEligible as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GatewayUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, **result.as_dict()}


@router.get("/payments/callback")
def payment_callback_get(request: Request, db: Session = Depends(get_db)):
    params = dict(request.query_params)
    outcome = reconcile_callback(db, params, fallback_order_id=params.get("orderId"))
    return _outcome_redirect(outcome)


@router.post("/payments/callback")
async def payment_callback_post(request: Request, db: Session = Depends(get_db)):
    # Paytm posts form fields; the orderId we appended to CALLBACK_URL arrives in the query string.
    form = await request.form()
    params = {k: v for k, v in form.items() if isinstance(v, str)}
    outcome = reconcile_callback(db, params, fallback_order_id=request.query_params.get("orderId"))
    return _outcome_redirect(outcome)


@router.get("/payments/verify/{order_id}")
def verify_payment(order_id: str, db: Session = Depends(get_db)):
    try:
        status = verify_status(db, order_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    out = PaymentStatusOut(
        orderId=status.order_id,
        transactionId=status.gateway_transaction_id,
        status=status.status,
        amount=status.amount,
        bookingId=status.booking_id,
    )
    return {"success": True, "transaction": out.model_dump(mode="json")}
