"""
Environment configuration for the PG billing core.

Every billing rule that varies between deployments (trial length,
fallback ceilings, warning windows) is read from the environment so
the services themselves carry no deployment constants.
"""

import json
from typing import List, Optional, Union
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
env_path = Path('.') / '.env'
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application configuration
    APP_NAME: str = Field(default="PG Billing Core", alias="PROJECT_NAME")
    API_VERSION: str = Field(default="v1", alias="PROJECT_VERSION")
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    CORS_ORIGINS: List[str] = Field(default=["*"], alias="BACKEND_CORS_ORIGINS")

    # Database configuration - support both individual fields and DATABASE_URL
    DATABASE_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "pg_billing"
    DB_POOL_SIZE: int = 20
    DB_POOL_OVERFLOW: int = 10

    # Redis configuration
    REDIS_URL: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    ENABLE_REDIS_FANOUT: bool = False

    # Payment gateway
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None

    # Billing rules
    TRIAL_PLAN_NAME: str = "Free Trial Plan"
    TRIAL_EXPIRED_PLAN_NAME: str = "Trial Expired Plan"
    DEFAULT_TRIAL_DAYS: int = 14
    DEFAULT_ROOM_CEILING: int = 5
    DEFAULT_BED_CEILING: int = 30
    RENEWAL_WINDOW_HOURS: int = 24
    EXPIRING_SOON_DAYS: int = 7
    TRIAL_EXPIRY_WARNING_DAYS: int = 3
    USAGE_WARNING_THRESHOLD: float = 0.9
    CONNECTION_STALE_SECONDS: int = 120
    CONNECTION_SWEEP_INTERVAL_SECONDS: int = 60

    # Monitoring and logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True
        extra = "ignore"  # This will ignore extra fields from .env

    # Validators
    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS_ORIGINS from string to list"""
        if isinstance(v, str):
            # Handle JSON string format from .env
            if v.startswith('[') and v.endswith(']'):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator('USAGE_WARNING_THRESHOLD')
    @classmethod
    def validate_usage_threshold(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("USAGE_WARNING_THRESHOLD must be in (0, 1]")
        return v

    def get_database_url(self) -> str:
        """Construct database URL from components or use provided URL"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # Construct from individual components
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    def is_sqlite(self) -> bool:
        return self.get_database_url().startswith("sqlite")

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
