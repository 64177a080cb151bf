# src/wpfleet/config.py
"""
Service configuration read from the environment.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Application settings from environment."""

    # Sessions
    session_secret: str = os.getenv("WPFLEET_SESSION_SECRET", "dev-session-secret-change-me")
    session_cookie: str = "wpfleet_session"

    # Storage: empty means the in-memory store
    database_url: str = os.getenv("WPFLEET_DATABASE_URL", "")

    # Demo data
    seed_demo_data: bool = _env_bool("WPFLEET_SEED_DEMO", "true")
    admin_password: str = os.getenv("WPFLEET_ADMIN_PASSWORD", "admin")

    # Workflows
    exclusive_site_runs: bool = _env_bool("WPFLEET_EXCLUSIVE_RUNS", "false")
    update_success_rate: float = float(os.getenv("WPFLEET_UPDATE_SUCCESS_RATE", "0.7"))
    step_delay_scale: float = float(os.getenv("WPFLEET_STEP_DELAY_SCALE", "1.0"))

    log_level: str = os.getenv("WPFLEET_LOG_LEVEL", "INFO")

    def __post_init__(self):
        # logging only accepts upper-case level names
        object.__setattr__(self, "log_level", self.log_level.strip().upper())

    @property
    def uses_database(self) -> bool:
        return bool(self.database_url)
