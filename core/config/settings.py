from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Dict, List
from dotenv import load_dotenv, find_dotenv

# Load environment variables from .env file (searching parent directories)
load_dotenv(find_dotenv())


class Settings(BaseSettings):
    """
    Unified Settings for the module market and the API gateway.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ═══════════════════════════════════════════════════════════════════
    # Application Settings
    # ═══════════════════════════════════════════════════════════════════
    APP_NAME: str = "Modgate"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", description="development, staging, production")
    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════════════════════
    # Server Settings
    # ═══════════════════════════════════════════════════════════════════
    HOST: str = "0.0.0.0"
    MODULE_MARKET_PORT: int = 3001
    GATEWAY_PORT: int = 3000
    CORS_ORIGINS: List[str] = Field(default=["*"])

    # ═══════════════════════════════════════════════════════════════════
    # Module Registry (descriptor store)
    # ═══════════════════════════════════════════════════════════════════
    MODULES_DIR: str = "modules"
    MODULE_DIR_PREFIX: str = "module-"
    DESCRIPTOR_FILENAME: str = "module.json"
    BACKEND_DIRNAME: str = "backend"
    FRONTEND_DIRNAME: str = "frontend"
    REGISTRY_RESCAN_INTERVAL: float = Field(default=0.0, description="Seconds between rescans, 0 disables")

    # ═══════════════════════════════════════════════════════════════════
    # Gateway Settings
    # ═══════════════════════════════════════════════════════════════════
    MODULE_MARKET_URL: str = "http://localhost:3001"
    DISCOVERY_TIMEOUT: float = 5.0
    ROUTE_REFRESH_INTERVAL: float = 60.0
    PROXY_TIMEOUT: float = 5.0
    GATEWAY_NAME: str = "Modgate-API-Gateway"

    # Degraded-mode routes used when the module market is unreachable
    DEFAULT_ROUTES: List[Dict[str, str]] = Field(default=[
        {"name": "module-market", "url": "http://localhost:3001", "prefix": "/api/module-market"},
        {"name": "module-user", "url": "http://localhost:3002", "prefix": "/api/user"},
    ])

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @field_validator("MODULE_MARKET_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @field_validator("DISCOVERY_TIMEOUT", "PROXY_TIMEOUT")
    @classmethod
    def validate_timeout(cls, v):
        """Timeouts bound outbound calls and must be positive"""
        if v <= 0:
            raise ValueError("Timeouts must be greater than zero")
        return v

    @field_validator("ROUTE_REFRESH_INTERVAL", "REGISTRY_RESCAN_INTERVAL")
    @classmethod
    def validate_interval(cls, v):
        if v < 0:
            raise ValueError("Intervals cannot be negative (use 0 to disable)")
        return v

    @field_validator("DEFAULT_ROUTES")
    @classmethod
    def validate_default_routes(cls, v):
        """Every fallback route needs a module name and a target URL"""
        for route in v:
            missing = [key for key in ("name", "url") if not route.get(key)]
            if missing:
                raise ValueError(
                    "DEFAULT_ROUTES entries require {}: {}".format(", ".join(missing), route)
                )
        return v


@lru_cache()
def get_settings():
    """Get cached settings instance"""
    return Settings()


# Export settings instance for easy import
settings = get_settings()
