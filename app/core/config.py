from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Firebase
    firebase_project_id: str
    firebase_credentials_path: str

    # API
    api_v1_str: str = "/api/v1"

    # Environment
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:5000"]

    # Experiments
    free_tier_max_active_experiments: int = 3
    default_reminder_hour: int = 20

    # Locks and reminder dedup
    experiment_lock_timeout_seconds: int = 10
    experiment_lock_block_seconds: int = 5
    reminder_dedup_ttl_hours: int = 26

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('default_reminder_hour')
    @classmethod
    def validate_reminder_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("default_reminder_hour must be between 0 and 23")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from environment


settings = Settings()
