"""Interactive terminal screens."""

from .settings import SettingsScreen

__all__ = ["SettingsScreen"]
