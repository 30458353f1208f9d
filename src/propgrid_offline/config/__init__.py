from propgrid_offline.config.loader import YamlConfigLoader
from propgrid_offline.config.models import AppConfig, ConfigLoadRequest

__all__ = ["AppConfig", "ConfigLoadRequest", "YamlConfigLoader"]
