"""
Configuration loading utilities for the dynamic form engine.

Loads config.yaml, deep-merges it over the defaults and configures logging
from the `logging` section.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("config.yaml")

# Global configuration cache
_config_cache: Optional[Dict[str, Any]] = None


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Dynamic Forms',
            'version': '1.0.0',
            'debug': False
        },
        'schema': {
            'directory': 'schemas',
            'primary_schema': 'supplier_schema.yaml',
            'fallback_schema': 'default_schema.yaml'
        },
        'form': {
            'layout': 'vertical',
            'columns': 2,
            'submit_label': 'Submit',
            'cancel_label': 'Cancel',
            'show_cancel': True
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary; defaults when the file is
        missing or unreadable
    """
    if config_path is None:
        config_path = CONFIG_FILE

    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def get_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Cached configuration; loaded on first use."""
    global _config_cache

    if _config_cache is None:
        _config_cache = load_config(config_path)
    return _config_cache


def reload_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Force reload of configuration from file.
    Useful for testing or when configuration changes.
    """
    global _config_cache
    _config_cache = None
    return get_config(config_path)


def get_config_value(section: str, key: str, default: Any = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        section: Configuration section (e.g., 'schema', 'form')
        key: Configuration key within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    config = get_config()
    return config.get(section, {}).get(key, default)


def get_logging_level(level_str: str) -> int:
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


def configure_logging(config: Optional[Dict[str, Any]] = None) -> int:
    """
    Configure root logging from the `logging` config section.

    Returns:
        The logging level that was applied
    """
    config = config or get_config()
    logging_config = config.get('logging', {})
    level = get_logging_level(logging_config.get('level', 'INFO'))
    log_format = logging_config.get('format', get_default_config()['logging']['format'])

    logging.basicConfig(level=level, format=log_format)
    logger.info(f"Logging configured to level: {logging.getLevelName(level)}")
    return level
