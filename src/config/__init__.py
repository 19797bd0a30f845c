"""Configuration module — exports Settings, the YAML loader, and a module-level singleton."""

from src.config.loader import build_settings, load_config
from src.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "build_settings", "load_config", "settings"]
