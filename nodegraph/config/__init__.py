"""Configuration module for nodegraph."""

from nodegraph.config.loader import get_config_path, load_config, save_config
from nodegraph.config.schema import Config, LoggingConfig, RuntimeConfig

__all__ = ["Config", "LoggingConfig", "RuntimeConfig", "load_config", "save_config", "get_config_path"]
