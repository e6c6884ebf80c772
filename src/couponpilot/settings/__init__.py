"""Settings package — layered TOML + environment configuration."""

from couponpilot.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
