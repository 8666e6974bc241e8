# authcore/adapters/configuration/config.py

from typing import Optional, List, Union
from logging import getLevelName
from pydantic import Field, PostgresDsn, field_validator, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"

    # Environment
    ENVIRONMENT: str = "development"  # "development", "production", "testing"

    # Nova flag de debug
    DEBUG: bool = False

    # Server (python -m authcore)
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # Storage backend: "database" (PostgreSQL) or "memory" (tests / local runs)
    STORE_BACKEND: str = "database"

    # Database
    DB_DRIVER: str = "psycopg2"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "authcore"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    TEST_MODE: bool = False
    TEST_POSTGRES_DB: str = ""
    DATABASE_URL: Optional[PostgresDsn] = Field(default=None, validate_default=True)

    # Auth
    SECRET_KEY: Optional[str] = None
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 60 * 60 * 24
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Session policy
    MAX_CONCURRENT_SESSIONS: int = 3
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_DURATION_MINUTES: int = 15
    SESSION_CLEANUP_INTERVAL_SECONDS: int = 24 * 60 * 60

    # Store retry (exponential backoff)
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Rate limiting for /api/*
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 10

    # Routing guard
    SESSION_VALIDATION_URL: Optional[str] = None
    # Shared by the guard and the API; derived from SECRET_KEY when unset
    SESSION_VALIDATION_KEY: Optional[str] = None
    SESSION_VALIDATION_ATTEMPTS: int = 3
    SESSION_VALIDATION_RETRY_DELAY_MS: int = 500
    SIGN_IN_PATH: str = "/auth/signin"

    # Email notifications
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: Optional[str] = None

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("DATABASE_URL", mode="before")
    def assemble_db_url(cls, value, info):
        if value:
            return value

        data = info.data
        db_name = data.get("TEST_POSTGRES_DB") if data.get("TEST_MODE") else data.get("POSTGRES_DB")
        return PostgresDsn.build(
            scheme=f"postgresql+{data.get('DB_DRIVER', 'psycopg2')}",
            username=data["POSTGRES_USER"],
            password=data["POSTGRES_PASSWORD"],
            host=data["POSTGRES_HOST"],
            port=data["POSTGRES_PORT"],
            path=db_name,
        )

    @field_validator("CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """
        Se vier como string CSV (ex: 'a,b,c'), transforma em lista.
        Se vier já como lista ou JSON, retorna como está.
        """
        if isinstance(v, str) and not v.startswith("["):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        raise ValueError(f"CORS_ORIGINS inválido: {v!r}")

    @field_validator("LOG_LEVEL", mode="before")
    def validate_log_level(cls, v: str) -> str:
        """Garante que o valor é um nível válido do logging"""
        lvl = v.upper()
        getLevelName(lvl)  # valida
        return lvl

    @field_validator("STORE_BACKEND", mode="before")
    def validate_store_backend(cls, v: str) -> str:
        backend = v.lower()
        if backend not in ("database", "memory"):
            raise ValueError(f"STORE_BACKEND inválido: {v!r}")
        return backend

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
