from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "netsweep"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database (scan history)
    DATABASE_URL: str = "sqlite+aiosqlite:///./netsweep.db"

    # Probing
    SCAN_TIMEOUT_MS: int = 1000  # per-probe wait before declaring unreachable
    MAX_CONCURRENT_PROBES: int = 50
    PACING_DELAY_MS: int = 10  # delay before each probe dispatch
    RESOLVE_HOSTNAMES: bool = True
    RESOLVE_VENDOR: bool = True
    PROBE_METHOD: str = "ping"  # "ping" (system binary) or "scapy" (raw ICMP, needs CAP_NET_RAW)

    # Enrichment
    OUI_DATABASE_PATH: Optional[str] = None  # Falls back to the bundled oui.csv
    DEFAULT_SUBNET: Optional[str] = None  # Auto-detect if None

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
