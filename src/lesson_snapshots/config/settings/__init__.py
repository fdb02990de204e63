"""Config settings – 12-factor env-based configuration."""
from lesson_snapshots.config.settings.base import Settings
from lesson_snapshots.config.settings.engine import EngineSettings
from lesson_snapshots.config.settings.loaders import DotenvSettingsLoader, EnvSettingsLoader, SettingsLoader

__all__ = ["DotenvSettingsLoader", "EngineSettings", "EnvSettingsLoader", "Settings", "SettingsLoader"]
