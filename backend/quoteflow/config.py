import json
import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

BACKEND_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field(default="Quoteflow API", validation_alias="PROJECT_NAME")
    environment: str = Field(default="dev", validation_alias="ENVIRONMENT")
    build_version: Optional[str] = Field(default=None, validation_alias="BUILD_VERSION")
    database_url: str = Field(
        default="sqlite+pysqlite:///./quoteflow-dev.db", validation_alias="DATABASE_URL"
    )
    # Router include prefix, e.g. "/api". Empty string mounts routes at the root.
    api_prefix: str = Field(default="/api", validation_alias="API_V1_STR")
    enable_docs: Optional[bool] = Field(
        default=None, validation_alias="ENABLE_DOCS", validate_default=True
    )

    secret_key: str = Field(default="change-me", validation_alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, validation_alias="CORS_ORIGINS", validate_default=True
    )

    # Cache-aside for list endpoints. REDIS_URL unset -> in-process store.
    cache_enabled: bool = Field(default=True, validation_alias="CACHE_ENABLED")
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    cache_ttl_inquiries_seconds: int = Field(default=120, validation_alias="CACHE_TTL_INQUIRIES")
    cache_ttl_search_seconds: int = Field(default=300, validation_alias="CACHE_TTL_SEARCH")

    # Outbound e-mail: "console" logs messages, "smtp" delivers them.
    email_backend: str = Field(default="console", validation_alias="EMAIL_BACKEND")
    email_from: str = Field(default="noreply@quoteflow.local", validation_alias="EMAIL_FROM")
    email_host: str = Field(default="localhost", validation_alias="EMAIL_HOST")
    email_port: int = Field(default=587, validation_alias="EMAIL_PORT")
    email_user: Optional[str] = Field(default=None, validation_alias="EMAIL_USER")
    email_password: Optional[str] = Field(default=None, validation_alias="EMAIL_PASSWORD")
    email_use_tls: bool = Field(default=True, validation_alias="EMAIL_USE_TLS")
    email_max_attempts: int = Field(default=5, validation_alias="EMAIL_MAX_ATTEMPTS")

    seed_dev_users: bool = Field(default=True, validation_alias="SEED_DEV_USERS")
    run_migrations_on_start: bool = Field(default=False, validation_alias="RUN_MIGRATIONS_ON_START")

    @field_validator("enable_docs", mode="after")
    @classmethod
    def default_enable_docs(cls, value, info):
        if value is None:
            env = str(info.data.get("environment", "dev") or "dev").lower()
            return env in {"dev", "development", "test"}
        return bool(value)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value, info):
        env = str(info.data.get("environment", "dev") or "dev").lower()

        def _normalize_origin(o: str) -> str:
            s = str(o).strip().strip('"').strip("'")
            # Browsers send the Origin header without a trailing slash.
            if s.endswith("/"):
                s = s[:-1]
            return s

        if value is None or value == "" or value == []:
            if env in {"prod", "production"}:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
            return [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:5173",
            ]

        if isinstance(value, str):
            s = value.strip()
            try:
                parsed = json.loads(s)
                if isinstance(parsed, list):
                    return [_normalize_origin(v) for v in parsed if str(v).strip()]
                return [_normalize_origin(str(parsed))]
            except json.JSONDecodeError:
                pass
            return [_normalize_origin(v) for v in s.split(",") if str(v).strip()]

        return [_normalize_origin(v) for v in value]

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, v) -> str:
        """
        Normalize API prefix coming from env/.env.

        On Windows Git Bash (MSYS), values like "/api" may arrive as a Windows path
        (e.g. "C:/Program Files/Git/api"). Extract the trailing "/api..." portion.
        """
        if v is None:
            return ""
        s = str(v).strip()
        if not s:
            return ""
        if s.startswith("/api"):
            return s.rstrip("/")

        m = re.search(r"(/api(?:/[^\s]*)?)$", s.replace("\\", "/"))
        if m:
            return m.group(1).rstrip("/")

        if s.startswith("api"):
            return f"/{s}".rstrip("/")
        return s

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v) -> str:
        """Make SQLite relative paths stable across working directories.

        Also maps plain postgres URLs onto the psycopg3 driver.
        """

        if v is None:
            return v

        s = str(v).strip()
        if not s:
            return s

        if s.startswith("postgres://"):
            s = "postgresql://" + s[len("postgres://") :]
        if s.startswith("postgresql://"):
            return "postgresql+psycopg://" + s[len("postgresql://") :]

        if not s.startswith("sqlite"):
            return s

        marker = ":///"
        i = s.find(marker)
        if i == -1:
            return s

        path_part = s[i + len(marker) :]
        if path_part == ":memory:" or path_part.startswith("/") or re.match(r"^[A-Za-z]:/", path_part):
            return s

        if path_part.startswith("./"):
            path_part = path_part[2:]
        return s[: i + len(marker)] + str((BACKEND_ROOT / path_part).resolve()).replace("\\", "/")


settings = Settings()
