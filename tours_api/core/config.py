from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

API_V1_PREFIX = "/api/v1"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"  # local | development | production
    APP_NAME: str = "tours-api"

    DATABASE_URL: str
    REDIS_URL: str
    DB_AUTO_CREATE: bool = False

    CORS_ORIGINS: str = "http://localhost:3000"

    JWT_SECRET: str = "change_me_jwt_secret"
    JWT_EXPIRES_IN_MINUTES: int = 90 * 24 * 60
    JWT_COOKIE_NAME: str = "jwt"
    JWT_COOKIE_EXPIRES_IN_DAYS: int = 90

    PASSWORD_RESET_TTL_MINUTES: int = 10
    PASSWORD_MIN_LENGTH: int = 8

    QUERY_DEFAULT_PAGE: int = 1
    QUERY_DEFAULT_LIMIT: int = 100
    QUERY_MAX_LIMIT: int = 1000  # 0 disables the cap

    API_RATE_LIMIT: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 3600

    EMAIL_PROVIDER: str = "dummy"  # dummy | smtp | service
    EMAIL_FROM: str = "Tours API <noreply@tours.local>"
    EMAIL_SERVICE_URL: str = "http://email-service:8010"
    INTERNAL_SERVICE_TOKEN: str = "change_me_internal_service_token"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.strip().lower() in {"local", "development"}

settings = Settings()
