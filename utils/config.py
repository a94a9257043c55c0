"""
Comparables engine settings, read from the environment.
"""

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


@dataclass
class Config:
    """
    Runtime settings for the API server, HTTP store and persistence sync.

    Every field falls back to a development default when its
    environment variable is unset.
    """

    # API server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # HttpComparablesStore
    comparables_api_url: str = field(
        default_factory=lambda: os.getenv("COMPARABLES_API_URL", "http://127.0.0.1:8000")
    )
    request_timeout: int = field(default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30")))

    # PersistenceSync
    max_retries: int = field(default_factory=lambda: int(os.getenv("MAX_RETRIES", "3")))
    save_debounce_seconds: float = field(
        default_factory=lambda: _env_float("SAVE_DEBOUNCE_SECONDS", "1.0")
    )

    # Date window filters count days in this zone
    reference_timezone: str = field(
        default_factory=lambda: os.getenv("REFERENCE_TIMEZONE", "UTC")
    )

    # ComparablesRepository file storage
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))

    @classmethod
    def load(cls) -> "Config":
        """Read settings from the current environment."""
        return cls()

    @property
    def comparables_file(self) -> str:
        """JSON file backing the comparables repository."""
        return os.path.join(self.data_dir, "comparables.json")

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "comparables_api_url": self.comparables_api_url,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
            "save_debounce_seconds": self.save_debounce_seconds,
            "reference_timezone": self.reference_timezone,
            "data_dir": self.data_dir,
        }
