"""Configuration and logging setup."""

from settings.config import Config, get_config, load_config, reload_config
from settings.log import configure_logging

__all__ = ["Config", "configure_logging", "get_config", "load_config", "reload_config"]
