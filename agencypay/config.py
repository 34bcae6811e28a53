"""Application configuration using Pydantic Settings."""
from decimal import Decimal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "AgencyPay Commissions"
    debug: bool = False

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "agencypay"

    # JWT (tokens are issued by the identity service; we only verify them)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Fallbacks when an agency has no stored configuration
    default_gst_rate: Decimal = Field(default=Decimal("0.10"), ge=0)
    default_institution_lead_time_days: int = Field(default=0, ge=0)
    default_currency: str = "AUD"

    # Plans and payments
    max_installments: int = 24
    overpayment_tolerance_percent: Decimal = Field(default=Decimal("10"), ge=0)  # paid_amount may reach 110% of amount
    payment_recalc_max_retries: int = 5

    # CORS (comma-separated origins, e.g. "https://app.example.com,https://admin.example.com")
    cors_origins: str = "http://localhost:5173"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
