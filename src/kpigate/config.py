"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation,
with an optional config.yaml providing defaults that env vars override.
"""

import json
import os
from functools import lru_cache
from typing import Annotated, Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        possible_paths = [
            os.environ.get("KPIGATE_CONFIG_FILE", ""),
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/kpigate
        ]

        for path in possible_paths:
            if path and os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


def _parse_budget(v: Any) -> Any:
    if isinstance(v, str):
        try:
            return json.loads(v)
        except json.JSONDecodeError:
            return v
    return v


class RateLimitBudget(BaseModel):
    """Requests allowed per caller within one fixed window."""

    max_requests: int = Field(ge=1, description="Requests allowed per window")
    window_seconds: int = Field(ge=1, description="Window length in seconds")

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


class DatabaseSettings(BaseSettings):
    """Relational store configuration."""

    url: str = Field(default="sqlite+aiosqlite:///./kpigate.db", description="SQLAlchemy async URL")
    echo: bool = Field(default=False, description="Echo SQL statements")
    create_tables: bool = Field(default=True, description="Create missing tables at startup")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    class Config:
        env_prefix = "KPIGATE_DATABASE_"


class SecuritySettings(BaseSettings):
    """Authentication and rate-limit configuration."""

    credential_header: str = Field(default="x-admin-password", description="Header carrying the caller credential")
    password_max_length: int = Field(default=1000, description="Longest password accepted at login")
    pbkdf2_iterations: int = Field(default=100_000, description="Iterations used when hashing new passwords")
    trusted_proxy_hops: int = Field(
        default=0,
        ge=0,
        description="Proxies that append to X-Forwarded-For; 0 trusts the first entry",
    )
    auth_rate_limit: RateLimitBudget = Field(
        default=RateLimitBudget(max_requests=10, window_seconds=300),
        description="Login attempts per caller",
    )
    read_rate_limit: RateLimitBudget = Field(
        default=RateLimitBudget(max_requests=60, window_seconds=60),
        description="Read operations per caller",
    )
    write_rate_limit: RateLimitBudget = Field(
        default=RateLimitBudget(max_requests=30, window_seconds=60),
        description="Write operations per caller",
    )

    @field_validator("auth_rate_limit", "read_rate_limit", "write_rate_limit", mode="before")
    def parse_budget(cls, v: Any) -> Any:
        """Accept budgets given as JSON strings."""
        return _parse_budget(v)

    class Config:
        env_prefix = "KPIGATE_SECURITY_"


class CorsSettings(BaseSettings):
    """Origin allow-list configuration."""

    allowed_origins: Annotated[List[str], NoDecode] = Field(default_factory=list, description="Allowed origins; empty allows all")
    development_mode: bool = Field(default=False, description="Match origins by substring containment")
    allow_headers: Annotated[List[str], NoDecode] = Field(
        default=["authorization", "x-client-info", "apikey", "content-type", "x-admin-password"],
        description="Headers advertised on preflight",
    )
    allow_methods: Annotated[List[str], NoDecode] = Field(default=["POST", "OPTIONS"], description="Methods advertised on preflight")
    max_age: int = Field(default=86400, description="Preflight cache lifetime in seconds")

    @field_validator("allowed_origins", "allow_headers", "allow_methods", mode="before")
    def parse_list(cls, v: Any) -> List[str]:
        """Accept JSON lists or comma-separated strings."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except json.JSONDecodeError:
                pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    class Config:
        env_prefix = "KPIGATE_CORS_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Component settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)

    class Config:
        env_prefix = "KPIGATE_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "KPIGATE_HOST",
        ("server", "port"): "KPIGATE_PORT",
        ("server", "debug"): "KPIGATE_DEBUG",
        ("server", "log_level"): "KPIGATE_LOG_LEVEL",
        ("database", "url"): "KPIGATE_DATABASE_URL",
        ("database", "echo"): "KPIGATE_DATABASE_ECHO",
        ("database", "create_tables"): "KPIGATE_DATABASE_CREATE_TABLES",
        ("security", "credential_header"): "KPIGATE_SECURITY_CREDENTIAL_HEADER",
        ("security", "password_max_length"): "KPIGATE_SECURITY_PASSWORD_MAX_LENGTH",
        ("security", "pbkdf2_iterations"): "KPIGATE_SECURITY_PBKDF2_ITERATIONS",
        ("security", "trusted_proxy_hops"): "KPIGATE_SECURITY_TRUSTED_PROXY_HOPS",
        ("cors", "development_mode"): "KPIGATE_CORS_DEVELOPMENT_MODE",
        ("cors", "max_age"): "KPIGATE_CORS_MAX_AGE",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = config_data.get(section, {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)

    # Structured values travel as JSON
    json_mappings = {
        ("security", "auth_rate_limit"): "KPIGATE_SECURITY_AUTH_RATE_LIMIT",
        ("security", "read_rate_limit"): "KPIGATE_SECURITY_READ_RATE_LIMIT",
        ("security", "write_rate_limit"): "KPIGATE_SECURITY_WRITE_RATE_LIMIT",
        ("cors", "allowed_origins"): "KPIGATE_CORS_ALLOWED_ORIGINS",
        ("cors", "allow_headers"): "KPIGATE_CORS_ALLOW_HEADERS",
        ("cors", "allow_methods"): "KPIGATE_CORS_ALLOW_METHODS",
    }

    for (section, key), env_var in json_mappings.items():
        if env_var not in os.environ:
            value = config_data.get(section, {}).get(key)
            if value is not None:
                os.environ[env_var] = json.dumps(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
