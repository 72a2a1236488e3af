"""
Client configuration loaded from the environment and `.env` via pydantic-settings.

Everything the application context needs to reach the backend, the chain and
the session storage lives here; nothing else reads environment variables.
"""
import re
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend REST API
    API_BASE_URL: str = Field(
        default="https://backend-vert-xi-76.vercel.app/api",
        description="Backend REST API base URL (including the /api prefix)",
    )
    APP_ORIGIN: str = Field(default="http://localhost:3000", description="Public origin used in referral links")
    HTTP_TIMEOUT: float = Field(default=10.0, description="Backend request timeout (seconds)")

    # Blockchain
    RPC_URL: str = Field(
        default="https://data-seed-prebsc-1-s1.bnbchain.org:8545",
        description="JSON-RPC endpoint of the required chain",
    )
    REQUIRED_CHAIN_ID: int = Field(default=97, description="The only chain the contract is deployed on")
    CONTRACT_ADDRESS: str = Field(
        default="0xA39bC71CF47AE2C84C7868b0DE83eeBAddb270Fd",
        description="E-commerce contract address",
    )
    CONTRACT_ABI_PATH: Optional[str] = Field(
        default=None,
        description="Path to a contract ABI JSON file (bundled ABI is used when unset)",
    )
    WALLET_PRIVATE_KEY: Optional[str] = Field(
        default=None,
        description="Local signing key; when unset the RPC node's accounts are used",
    )
    RECEIPT_TIMEOUT: float = Field(default=120.0, description="Max wait for a transaction receipt (seconds)")
    RECEIPT_POLL_INTERVAL: float = Field(default=2.0, description="Receipt polling interval (seconds)")

    # Referral polling
    REFERRAL_POLL_INTERVAL: float = Field(default=30.0, description="Referral dashboard refresh period (seconds)")

    # Session storage
    SESSION_BACKEND: Literal["memory", "file", "redis"] = Field(default="file")
    SESSION_FILE: str = Field(default=".chainshop_session.json", description="Session file for the file backend")
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)

    # Runtime
    ENVIRONMENT: Literal["development", "production"] = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        if v.upper() not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {_LOG_LEVELS}")
        return v.upper()

    @field_validator("SESSION_BACKEND", mode="before")
    @classmethod
    def lowercase_backend(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("API_BASE_URL", "APP_ORIGIN")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("HTTP_TIMEOUT", "REFERRAL_POLL_INTERVAL", "RECEIPT_TIMEOUT", "RECEIPT_POLL_INTERVAL")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("intervals and timeouts must be positive")
        return v

    @field_validator("CONTRACT_ADDRESS")
    @classmethod
    def contract_address_format(cls, v: str) -> str:
        if v and not _ADDRESS_RE.match(v):
            raise ValueError("CONTRACT_ADDRESS must be a 0x-prefixed 20-byte hex address")
        return v

    @field_validator("WALLET_PRIVATE_KEY")
    @classmethod
    def private_key_format(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _PRIVATE_KEY_RE.match(v):
            # The value itself stays out of the message
            raise ValueError("WALLET_PRIVATE_KEY must be a 32-byte hex key")
        return v or None

    def validate_production_settings(self) -> list[str]:
        """Problems that only matter in production; empty when the config is usable."""
        if self.ENVIRONMENT != "production":
            return []
        problems = []
        if not self.API_BASE_URL.startswith("https://"):
            problems.append("API_BASE_URL must use https in production")
        if not self.CONTRACT_ADDRESS:
            problems.append("CONTRACT_ADDRESS is required in production")
        if self.SESSION_BACKEND == "memory":
            problems.append("SESSION_BACKEND=memory loses the session on every restart")
        return problems

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Load settings once; raises ValueError listing every production problem."""
    global _settings
    if _settings is None:
        settings = Settings()
        problems = settings.validate_production_settings()
        if problems:
            raise ValueError("Configuration errors:\n" + "\n".join(f"  - {p}" for p in problems))
        _settings = settings
    return _settings
