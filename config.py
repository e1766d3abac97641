from pydantic_settings import BaseSettings
from typing import Any, List, Optional
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "Hostel Management API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    PORT: int = 8000
    CORS_ORIGINS_STR: str = "*"

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: str = "hostel"
    DATABASE_TIMEOUT_MS: int = 5000
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BASE_DELAY: float = 0.2
    STORE_RETRY_MAX_DELAY: float = 5.0
    OPTIMISTIC_RETRIES: int = 5

    # ==========================================
    # Identity provider
    # ==========================================
    JWT_SECRET: str = "dev-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MIN: int = 60

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # ==========================================
    # Display
    # ==========================================
    CURRENCY_SYMBOL: str = "₹"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
