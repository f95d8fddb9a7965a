"""Configuration module for eventsdb."""

from .settings import DatabaseSettings, LoggingSettings, Settings, get_settings

__all__ = ["DatabaseSettings", "LoggingSettings", "Settings", "get_settings"]
