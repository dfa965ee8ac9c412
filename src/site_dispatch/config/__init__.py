"""Configuration management for Site Dispatch."""

from site_dispatch.config.schema import AppConfig
from site_dispatch.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
