from decimal import Decimal, InvalidOperation
from sqlalchemy.orm import Session

from broheal.core.config import settings
from broheal.models.setting import Setting
from broheal.services.paytm_client import PaytmConfig, GATEWAY_MODES

COMMISSION_KEY = "commission_percentage"
PAYTM_KEYS = ("paytm_merchant_id", "paytm_merchant_key", "paytm_enabled", "paytm_mode", "paytm_website", "paytm_callback_url")
WHATSAPP_KEYS = ("whatsapp_api_url", "whatsapp_phone_number_id", "whatsapp_access_token", "whatsapp_enabled")


def _values(db: Session, keys) -> dict:
    rows = db.query(Setting).filter(Setting.key.in_(keys)).all()
    return {r.key: r.value for r in rows if r.value is not None and r.value != ""}


def _as_bool(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() not in ("0", "false", "no", "off")


def set_value(db: Session, key: str, value: str | None) -> None:
    s = db.get(Setting, key)
    if not s:
        db.add(Setting(key=key, value=value))
    else:
        s.value = value


def get_commission_percentage(db: Session) -> Decimal:
    """Current platform cut in percent. Read on every call so admin edits apply to the next settlement."""
    s = db.get(Setting, COMMISSION_KEY)
    if s and s.value not in (None, ""):
        try:
            return Decimal(s.value)
        except InvalidOperation:
            pass
    return Decimal(str(settings.COMMISSION_PERCENTAGE))


def set_commission_percentage(db: Session, rate) -> Decimal:
    rate = Decimal(str(rate))
    if rate < 0 or rate > 100:
        raise ValueError("commission percentage must be between 0 and 100")
    set_value(db, COMMISSION_KEY, str(rate))
    db.commit()
    return rate


def get_gateway_config(db: Session) -> PaytmConfig:
    """Resolve Paytm configuration: settings rows first, environment second."""
    cfg = _values(db, PAYTM_KEYS)
    mode = (cfg.get("paytm_mode") or settings.PAYTM_MODE or "staging").strip().lower()
    website = cfg.get("paytm_website") or settings.PAYTM_WEBSITE
    if mode == "staging":
        website = "WEBSTAGING"
    return PaytmConfig(
        merchant_id=cfg.get("paytm_merchant_id") or settings.PAYTM_MERCHANT_ID,
        merchant_key=cfg.get("paytm_merchant_key") or settings.PAYTM_MERCHANT_KEY,
        website=website,
        channel_id=settings.PAYTM_CHANNEL_ID,
        industry_type=settings.PAYTM_INDUSTRY_TYPE,
        callback_url=cfg.get("paytm_callback_url") or settings.PAYTM_CALLBACK_URL,
        frontend_url=settings.FRONTEND_URL,
        mode=mode,
        enabled=_as_bool(cfg.get("paytm_enabled")),
    )


def set_gateway_config(db: Session, *, merchant_id: str | None = None, merchant_key: str | None = None,
                       mode: str | None = None, enabled: bool | None = None,
                       website: str | None = None, callback_url: str | None = None) -> PaytmConfig:
    if mode is not None and mode not in GATEWAY_MODES:
        raise ValueError(f"mode must be one of {', '.join(GATEWAY_MODES)}")
    updates = {
        "paytm_merchant_id": merchant_id,
        "paytm_merchant_key": merchant_key,
        "paytm_mode": mode,
        "paytm_enabled": None if enabled is None else ("true" if enabled else "false"),
        "paytm_website": website,
        "paytm_callback_url": callback_url,
    }
    for key, value in updates.items():
        if value is not None:
            set_value(db, key, value)
    db.commit()
    return get_gateway_config(db)


def get_whatsapp_config(db: Session) -> dict:
    cfg = _values(db, WHATSAPP_KEYS)
    return {
        "api_url": cfg.get("whatsapp_api_url") or settings.WHATSAPP_API_URL,
        "phone_number_id": cfg.get("whatsapp_phone_number_id") or settings.WHATSAPP_PHONE_NUMBER_ID,
        "access_token": cfg.get("whatsapp_access_token") or settings.WHATSAPP_ACCESS_TOKEN,
        "enabled": _as_bool(cfg.get("whatsapp_enabled")),
    }
