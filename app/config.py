from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field, field_validator, model_validator
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Booking store: "memory" keeps bookings for the process lifetime only,
    # "sql" uses DATABASE_URL through SQLAlchemy
    booking_store_backend: str = Field(default="memory", alias="BOOKING_STORE_BACKEND")
    database_url: str = Field(default="sqlite:///./app.db", alias="DATABASE_URL")

    # ==============================================
    # Chapa Payment Gateway (Server-Side Only!)
    # ==============================================
    chapa_base_url: str = Field(default="https://api.chapa.co/v1", alias="CHAPA_BASE_URL")
    chapa_secret_key: str = Field(default="", alias="CHAPA_SECRET_KEY")

    # Timeouts (seconds) per call site
    chapa_timeout_seconds: float = Field(default=30, alias="CHAPA_TIMEOUT_SECONDS")
    chapa_verify_timeout_seconds: float = Field(default=10, alias="CHAPA_VERIFY_TIMEOUT_SECONDS")
    chapa_return_timeout_seconds: float = Field(default=5, alias="CHAPA_RETURN_TIMEOUT_SECONDS")

    # Public URL of this application, used for callback and return URLs
    app_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("NEXT_PUBLIC_APP_URL", "APP_URL", "app_url")
    )

    payment_currency: str = Field(default="ETB", alias="PAYMENT_CURRENCY")
    tx_ref_prefix: str = Field(default="BOOKING", alias="TX_REF_PREFIX")
    phone_country_code: str = Field(default="251", alias="PHONE_COUNTRY_CODE")
    fallback_email_domain: str = Field(default="mbshop.com", alias="FALLBACK_EMAIL_DOMAIN")
    shop_title: str = Field(default="MB Barbershop", alias="SHOP_TITLE")

    # ==============================================
    # Opening hours and slots
    # ==============================================
    opening_hour: int = Field(default=2, alias="OPENING_HOUR")
    closing_hour: int = Field(default=14, alias="CLOSING_HOUR")
    slot_interval_minutes: int = Field(default=45, alias="SLOT_INTERVAL_MINUTES")
    # Upper bound on cuts per day, independent of closing_hour. 0 = no cap.
    max_slots_per_day: Optional[int] = Field(default=15, alias="MAX_SLOTS_PER_DAY")

    # Admin endpoints (update/delete bookings). Empty = open.
    admin_api_key: str = Field(default="", alias="ADMIN_API_KEY")

    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    # slowapi storage, e.g. redis://localhost:6379 when running several instances
    rate_limit_storage_uri: str = Field(default="memory://", alias="RATE_LIMIT_STORAGE_URI")

    @field_validator('slot_interval_minutes')
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SLOT_INTERVAL_MINUTES must be positive")
        return v

    @field_validator('booking_store_backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("memory", "sql"):
            raise ValueError("BOOKING_STORE_BACKEND must be 'memory' or 'sql'")
        return v

    @model_validator(mode='after')
    def validate_hours(self):
        if not (0 <= self.opening_hour < self.closing_hour <= 24):
            raise ValueError("CLOSING_HOUR must be after OPENING_HOUR, both within 0..24")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def slot_cap(self) -> Optional[int]:
        """Cap handed to the slot calculator (None when disabled)."""
        if not self.max_slots_per_day:
            return None
        return self.max_slots_per_day

    @property
    def public_url(self) -> str:
        return self.app_url.rstrip("/")

    @property
    def has_chapa_config(self) -> bool:
        return bool(self.chapa_secret_key and self.chapa_base_url)

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        if not self.allowed_origins:
            return ["http://localhost:3000"]

        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)

        return origins if origins else ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
