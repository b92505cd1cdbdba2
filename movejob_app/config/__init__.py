"""
Configuration for billing rules, step catalog, storage and display tick.
"""
from .defaults import EngineConfig, get_default_config
from .loader import ConfigLoader

__all__ = ["EngineConfig", "get_default_config", "ConfigLoader"]
