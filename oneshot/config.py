"""Configuration - task scheduler settings"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
load_dotenv(override=True)


@dataclass
class Settings:
    """Scheduler settings"""

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    debug: bool = False

    # Delay used when a task's target time has already passed
    due_delay_ms: int = 0

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables"""
        debug = os.getenv("ONESHOT_DEBUG", "").lower() in ("1", "true")
        log_level = os.getenv("ONESHOT_LOG_LEVEL", "INFO").upper()

        return cls(
            log_level="DEBUG" if debug else log_level,
            log_file=os.getenv("ONESHOT_LOG_FILE") or None,
            debug=debug,
            due_delay_ms=max(0, int(os.getenv("ONESHOT_DUE_DELAY_MS", "0"))),
        )


# Global settings instance
settings = Settings.from_env()
