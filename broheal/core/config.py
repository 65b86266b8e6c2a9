from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Bro Heal API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    DATABASE_URL: str = "sqlite:///./broheal.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    FRONTEND_URL: str = "http://localhost:3000"

    # Platform cut in percent; the "commission_percentage" setting row overrides it.
    COMMISSION_PERCENTAGE: float = 10

    # Paytm defaults; admin-edited rows in the settings table take precedence.
    PAYTM_MERCHANT_ID: str = ""
    PAYTM_MERCHANT_KEY: str = ""
    PAYTM_MODE: str = "staging"  # test|staging|production
    PAYTM_WEBSITE: str = "WEB"
    PAYTM_CHANNEL_ID: str = "WEB"
    PAYTM_INDUSTRY_TYPE: str = "Retail"
    PAYTM_CALLBACK_URL: str = ""  # e.g. https://api.broheal.in/api/v1/payments/callback

    # WhatsApp Cloud API for customer/therapist notifications
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v18.0"
    WHATSAPP_PHONE_NUMBER_ID: str = ""
    WHATSAPP_ACCESS_TOKEN: str = ""
    WHATSAPP_COUNTRY_CODE: str = "91"


settings = Settings()
