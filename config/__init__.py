"""Configuration package for the MFP forecaster."""

from .config_manager import ConfigurationError, ConfigurationManager, get_config

__all__ = ["ConfigurationError", "ConfigurationManager", "get_config"]
