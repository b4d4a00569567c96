"""
Stock ledger configuration, read from the environment and an optional .env
"""
from decimal import Decimal
from typing import List
import warnings

from pydantic_settings import BaseSettings, SettingsConfigDict

INSECURE_SECRET_KEYS = {
    "change-me",
    "secret-key",
    "stockledger-dev-secret-key-replace-before-deploying",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    APP_NAME: str = "Stock Ledger API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./stockledger.db"

    # Tokens are issued elsewhere and signed with this shared key
    SECRET_KEY: str = "stockledger-dev-secret-key-replace-before-deploying"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    CORS_ORIGINS: str = "http://localhost:3000"

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_LEDGER_WRITES: int = 30  # batch and stock-action writes per window
    RATE_LIMIT_MAINTENANCE: int = 5  # bulk reconcile per window
    RATE_LIMIT_DEFAULT: int = 100

    SRD_PER_USD: Decimal = Decimal("5.5")
    CONFLICT_RETRY_ATTEMPTS: int = 3

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def database_url(self) -> str:
        # hosting panels hand out file:/path URLs for SQLite
        if self.DATABASE_URL.startswith("file:"):
            return "sqlite:///" + self.DATABASE_URL[len("file:"):]
        return self.DATABASE_URL

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def configuration_problems(self) -> List[str]:
        problems = []
        if self.SECRET_KEY in INSECURE_SECRET_KEYS:
            problems.append("SECRET_KEY is a placeholder; set it to the key shared with the token issuer")
        elif len(self.SECRET_KEY) < 32:
            problems.append("SECRET_KEY should be at least 32 characters")
        if self.DEBUG and self.is_production:
            problems.append("DEBUG must be off in production")
        if self.CONFLICT_RETRY_ATTEMPTS < 1:
            problems.append("CONFLICT_RETRY_ATTEMPTS must be at least 1")
        if self.SRD_PER_USD <= 0:
            problems.append("SRD_PER_USD must be positive")
        return problems

    def validate_security_settings(self) -> bool:
        """Refuse to start production with a bad configuration; warn anywhere else"""
        problems = self.configuration_problems()
        if problems and self.is_production:
            raise ValueError("Invalid configuration: " + "; ".join(problems))
        for problem in problems:
            warnings.warn(problem, UserWarning)
        return not problems


settings = Settings()
settings.validate_security_settings()
