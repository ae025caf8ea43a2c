"""Settings configuration loader module.

This module handles loading and parsing of the settings.conf file which holds
the service settings: database location, store backend, token signing and the
API listener.

The settings file uses INI format with a [DEFAULT] section containing key-value pairs.
The file is optional. When it is missing the built-in DEFAULTS are used, which
point at a local CockroachDB node.

Example settings.conf:
    [DEFAULT]
    db_url = postgresql://root@localhost:26257/cointrade?sslmode=disable
    store_backend = postgres
    jwt_secret = change-me

Raises:
    SettingsError: If the settings file is invalid or holds invalid values
"""
from configparser import ConfigParser, Error as ConfigParserError
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging
import os

logger = logging.getLogger(__name__)

SETTINGS_ENV_VAR = 'COINTRADE_SETTINGS'

STORE_BACKENDS = ('postgres', 'memory')

class ConfigValidationError:
    """Helper class to format configuration validation errors"""
    def __init__(self):
        self.missing: List[str] = []
        self.invalid_values: List[str] = []

    def has_errors(self) -> bool:
        """Check if any errors exist"""
        return bool(self.missing or self.invalid_values)

    def format_message(self) -> str:
        """Format error message in a clean, readable way"""
        messages = []

        if self.missing:
            if messages:
                messages.append("")
            messages.append("Missing required settings:")
            messages.extend(f"  - {item}" for item in self.missing)

        if self.invalid_values:
            if messages:
                messages.append("")
            messages.append("Invalid values:")
            messages.extend(f"  - {item}" for item in self.invalid_values)

        return "\n".join(messages)

class SettingsError(Exception):
    """Raised when there are issues loading or parsing the settings configuration."""
    pass

# Default settings
DEFAULTS = {
    'db_url': 'postgresql://root@localhost:26257/cointrade?sslmode=disable',
    'store_backend': 'postgres',
    'jwt_secret': '',  # Empty means a random secret per process
    'jwt_algorithm': 'HS256',
    'session_expiry_days': '30',
    'api_host': '0.0.0.0',
    'api_port': '8000',
    'log_level': 'INFO',
    'db_min_pool_size': '2',
    'db_max_pool_size': '20'
}

def _resolve_settings_path(settings_path: Optional[str]) -> Path:
    """Work out which settings.conf to read."""
    if settings_path:
        path = Path(settings_path)
    elif os.environ.get(SETTINGS_ENV_VAR):
        path = Path(os.environ[SETTINGS_ENV_VAR])
    else:
        path = Path('.')
    if path.is_dir():
        path = path / 'settings.conf'
    return path

def load_settings_conf(settings_path: Optional[str] = None) -> Dict[str, Any]:
    """Load and parse settings.conf with strict validation

    Args:
        settings_path: settings.conf file or the directory containing it. Falls back
                       to $COINTRADE_SETTINGS, then to the current directory.

    Returns:
        Dictionary containing validated settings

    Raises:
        SettingsError: If parsing fails or validation fails
    """
    config_path = _resolve_settings_path(settings_path)

    if not config_path.exists():
        logger.debug(f"No settings file at {config_path}, using defaults")
        return validate_settings(dict(DEFAULTS))

    try:
        parser = ConfigParser(defaults=DEFAULTS)
        parser.read(config_path)
    except ConfigParserError as e:
        raise SettingsError(f"Error parsing {config_path}: {str(e)}")

    errors = ConfigValidationError()
    settings = dict(parser['DEFAULT'])

    # Only db_url is required, and only for the postgres backend
    if settings.get('store_backend') == 'postgres' and not settings.get('db_url'):
        errors.missing.append('db_url')

    if errors.has_errors():
        raise SettingsError(
            "Settings Configuration Validation Failed\n\n" +
            errors.format_message()
        )

    return validate_settings(settings)

def validate_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Validate loaded settings.

    Args:
        settings: Dictionary of settings to validate

    Returns:
        Validated and processed settings

    Raises:
        SettingsError: If validation fails
    """
    errors = ConfigValidationError()

    # Convert numeric settings
    for key in ('session_expiry_days', 'api_port', 'db_min_pool_size', 'db_max_pool_size'):
        try:
            settings[key] = int(settings[key])
        except (TypeError, ValueError, KeyError):
            errors.invalid_values.append(f"{key}: expected an integer, got {settings.get(key)!r}")

    if not errors.invalid_values:
        # Validate numeric ranges
        if settings['session_expiry_days'] < 1:
            errors.invalid_values.append("session_expiry_days must be at least 1")
        if not 0 < settings['api_port'] < 65536:
            errors.invalid_values.append("api_port must be between 1 and 65535")
        if settings['db_min_pool_size'] < 1:
            errors.invalid_values.append("db_min_pool_size must be at least 1")
        if settings['db_max_pool_size'] < settings['db_min_pool_size']:
            errors.invalid_values.append("db_max_pool_size must not be below db_min_pool_size")

    backend = str(settings.get('store_backend', '')).strip().lower()
    if backend not in STORE_BACKENDS:
        errors.invalid_values.append(
            f"store_backend: must be one of {', '.join(STORE_BACKENDS)}, got {backend!r}"
        )
    settings['store_backend'] = backend

    level = str(settings.get('log_level', 'INFO')).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        errors.invalid_values.append(f"log_level: unknown level {level!r}")
    settings['log_level'] = level

    if errors.has_errors():
        raise SettingsError(
            "Invalid settings configuration\n\n" + errors.format_message()
        )

    return settings
