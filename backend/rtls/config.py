# rtls/config.py
# ------------------------------------------------------------
# Central configuration using pydantic-settings.
#
# All values can be overridden via environment variables.
# Runtime-editable options (unit, interval, retention, ...) are
# seeded from here into SystemSettings at service creation.
# ------------------------------------------------------------

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """
    Runtime configuration for the backend.
    """

    # --------------------------------------------------------
    # Admin controls (export/import/reset)
    # --------------------------------------------------------
    admin_lock_sec: int = 10        # prevent concurrent "double fire"

    # --------------------------------------------------------
    # Infrastructure
    # --------------------------------------------------------
    redis_url: str = "redis://localhost:6379/0"
    updates_backlog: int = 500      # SSE feed entries kept in Redis

    # --------------------------------------------------------
    # CORS / Frontend integration
    # --------------------------------------------------------
    api_cors_origins: str = (
        "http://localhost:5173,"
        "http://localhost:3000"
    )

    # --------------------------------------------------------
    # Logging
    # --------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False

    # --------------------------------------------------------
    # Simulation toggles
    # --------------------------------------------------------
    generators_enabled: bool = True
    seed_demo_fleet: bool = True

    # --------------------------------------------------------
    # Simulation parameters
    # --------------------------------------------------------
    update_interval_sec: int = 10
    temperature_jitter_c: float = 0.5
    temperature_floor_c: float = 0.0
    temperature_ceiling_c: float = 40.0
    battery_drain_probability: float = 0.1
    position_jitter_deg: float = 0.00005

    # --------------------------------------------------------
    # Status & alert rules
    # --------------------------------------------------------
    default_temperature_threshold: float = 25.0
    warning_margin_c: float = 2.0
    low_battery_threshold: int = 20
    offline_after_sec: int = 300    # 0 disables the staleness check
    alert_retention_days: int = 30
    recent_alerts_limit: int = 5
    temperature_history_size: int = 360

    # --------------------------------------------------------
    # Presentation defaults
    # --------------------------------------------------------
    temperature_unit: str = "celsius"
    language: str = "en"
    map_provider: str = "openstreetmap"
    enable_sound_alerts: bool = True
    enable_desktop_notifications: bool = True

    # --------------------------------------------------------
    # Helpers
    # --------------------------------------------------------
    def cors_list(self) -> List[str]:
        """
        Parse comma-separated CORS origins into a clean list.
        """
        return [
            x.strip()
            for x in self.api_cors_origins.split(",")
            if x.strip()
        ]


# Singleton settings object
settings = Settings()
