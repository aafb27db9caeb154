from .loader import ConfigError, load_config, parse_config
from .models import DataSourceConfig, LoggingConfig, MergeConfig, SimulatorConfig

# Config exports are intentionally small.
__all__ = [
    "ConfigError",
    "DataSourceConfig",
    "LoggingConfig",
    "MergeConfig",
    "SimulatorConfig",
    "load_config",
    "parse_config",
]
