import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, field_validator


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Settings(BaseModel):
    project_name: str = "Shop API"
    version: str = "0.1.0"
    environment: str = "development"

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop"

    # JWT. No default secret: startup refuses to run without one.
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24h

    # Password hashing
    bcrypt_rounds: int = 10

    # HTTP
    cors_origins: List[str] = ["*"]
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60

    log_level: Optional[str] = None
    port: int = 8000

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return v
        return ["*"]

    @field_validator("bcrypt_rounds")
    @classmethod
    def check_rounds(cls, v: int) -> int:
        if v < 4 or v > 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "shop"),
            jwt_secret=os.getenv("JWT_SECRET") or None,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 10),
            cors_origins=os.getenv("CORS_ORIGINS", "*"),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", 100),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
            log_level=os.getenv("LOG_LEVEL") or None,
            port=_env_int("PORT", 8000),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
