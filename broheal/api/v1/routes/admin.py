from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from broheal.api.deps import require_roles
from broheal.db.session import get_db
from broheal.models.user import User
from broheal.schemas.settings import CommissionIn, PaytmSettingsIn, PaytmSettingsOut
from broheal.services.audit_service import log_audit
from broheal.services.paytm_client import PaytmConfig
from broheal.services.settings_service import (
    get_commission_percentage,
    get_gateway_config,
    set_commission_percentage,
    set_gateway_config,
)

router = APIRouter(tags=["admin"])


def _paytm_out(cfg: PaytmConfig) -> PaytmSettingsOut:
    # The merchant key is write-only.
    return PaytmSettingsOut(
        merchantId=cfg.merchant_id or "",
        merchantKeySet=bool(cfg.merchant_key),
        mode=cfg.mode,
        enabled=cfg.enabled,
        website=cfg.website or "",
        callbackUrl=cfg.callback_url or "",
    )


@router.get("/admin/settings/commission")
def get_commission(db: Session = Depends(get_db), me: User = Depends(require_roles("admin"))):
    return {"percentage": str(get_commission_percentage(db))}


@router.put("/admin/settings/commission")
def put_commission(body: CommissionIn, db: Session = Depends(get_db), me: User = Depends(require_roles("admin"))):
    try:
        rate = set_commission_percentage(db, body.percentage)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    log_audit(db, me.id, "setting.commission", "setting", "commission_percentage", {"percentage": str(rate)})
    db.commit()
    return {"ok": True, "percentage": str(rate)}


@router.get("/admin/settings/paytm", response_model=PaytmSettingsOut)
def get_paytm(db: Session = Depends(get_db), me: User = Depends(require_roles("admin"))):
    return _paytm_out(get_gateway_config(db))


@router.put("/admin/settings/paytm", response_model=PaytmSettingsOut)
def put_paytm(body: PaytmSettingsIn, db: Session = Depends(get_db), me: User = Depends(require_roles("admin"))):
    try:
        cfg = set_gateway_config(
            db,
            merchant_id=body.merchantId,
            merchant_key=body.merchantKey,
            mode=body.mode,
            enabled=body.enabled,
            website=body.website,
            callback_url=body.callbackUrl,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    log_audit(db, me.id, "setting.paytm", "setting", "paytm",
              body.model_dump(exclude={"merchantKey"}, exclude_none=True))
    db.commit()
    return _paytm_out(cfg)
