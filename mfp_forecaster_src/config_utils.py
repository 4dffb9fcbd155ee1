# mfp_forecaster_src/config_utils.py

import logging

from config import ConfigurationError, get_config

logger = logging.getLogger(__name__)

# Global configuration manager, populated by initialize_config()
config_manager = None


def initialize_config(reload: bool = False):
    """
    Initializes the global configuration manager.

    Loads config/settings.yaml and logs any validation warnings. A malformed
    file raises ConfigurationError; the run cannot proceed on guessed settings.
    """
    global config_manager
    if config_manager is None or reload:
        config_manager = get_config(reload=reload)
        validation_errors = config_manager.validate_configuration()
        if validation_errors:
            logger.warning("Configuration validation warnings: %s", validation_errors)
    return config_manager


def get_config_value(key_path: str, default=None, args=None, cli_param=None):
    """
    Retrieves a configuration value, providing support for command-line overrides.
    The function prioritizes values in the following order:
    1. CLI argument (if provided)
    2. Configuration file
    3. Default value
    """
    if args is not None and cli_param and hasattr(args, cli_param):
        cli_value = getattr(args, cli_param)
        if cli_value is not None:
            return cli_value

    if config_manager is not None:
        config_value = config_manager.get(key_path, None)
        if config_value is not None:
            return config_value

    return default


def require_config_value(key_path: str, args=None, cli_param=None):
    """Like get_config_value, but a missing setting is a ConfigurationError."""
    value = get_config_value(key_path, None, args, cli_param)
    if value is None:
        raise ConfigurationError(f"Missing required setting '{key_path}'")
    return value
