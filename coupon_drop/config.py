from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"
    ALLOWED_ORIGINS: str = "http://127.0.0.1:3000,http://localhost:3000"
    ADMIN_API_KEY: str = "change-me"
    LOG_LEVEL: str = "INFO"

    # storage (unset -> in-process store)
    REDIS_URL: str | None = None
    REDIS_KEY_PREFIX: str = "coupon-drop"

    # claim rules
    COOLDOWN_MS: int = 30_000
    SESSION_COOKIE_NAME: str = "claim_session"

    # coupon pool
    MINIMUM_COUPONS: int = 20
    REPLENISH_COUNT: int = 50
    INITIAL_SEED_COUNT: int = 100
    COUPON_CODE_LENGTH: int = 8

    # rate limit
    PUBLIC_RATE_LIMIT: str = "100/15 minutes"
    ADMIN_RATE_LIMIT: str = "20/minute"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


settings = Settings()
