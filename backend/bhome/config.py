"""Application configuration using Pydantic Settings."""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

from .protocol.constants import (
    MAX_RETRIES,
    RETRY_DELAY,
    TIMEOUT_SMS_RESPONSE,
    TIMEOUT_SMS_SEND,
)

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/bhome/bhome.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # Panel (the number saved through the API takes precedence)
    panel_phone: str = ""

    # GSM modem
    serial_port: str = "/dev/ttyUSB0"
    baud_rate: int = 115200
    serial_timeout: float = 1.0

    # Exchanges
    sms_send_timeout_sec: float = TIMEOUT_SMS_SEND
    response_timeout_sec: float = TIMEOUT_SMS_RESPONSE
    max_retries: int = MAX_RETRIES  # for an outer retry policy; the engine never retries
    retry_delay_sec: float = RETRY_DELAY

    # Send SET:U after a local permission change
    dispatch_permission_updates: bool = False

    # SMS journal
    sms_log_limit: int = 500

    # Database
    db_path: str = "bhome.db"

    @model_validator(mode="after")
    def _resolve_db_path(self) -> "Settings":
        """Make db_path absolute: relative to /var/lib/bhome if installed, else project root."""
        if self.db_path == ":memory:":
            return self
        p = Path(self.db_path)
        if not p.is_absolute():
            if _ENV_FILE == _SYSTEM_CONF:
                self.db_path = str(Path("/var/lib/bhome") / p)
            else:
                self.db_path = str(_PROJECT_ROOT / p)
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "BHOME_", "env_file": str(_ENV_FILE)}


settings = Settings()
