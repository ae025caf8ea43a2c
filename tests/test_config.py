"""Tests for settings loading and validation."""

import pytest

from config import DEFAULTS, SettingsError, load_settings_conf, validate_settings

def write_settings(directory, body: str):
    path = directory / 'settings.conf'
    path.write_text("[DEFAULT]\n" + body)
    return path

def test_missing_file_uses_defaults(tmp_path):
    """Test an absent settings.conf falls back to DEFAULTS."""
    settings = load_settings_conf(str(tmp_path))

    assert settings['db_url'] == DEFAULTS['db_url']
    assert settings['store_backend'] == 'postgres'
    assert settings['api_port'] == 8000
    assert settings['session_expiry_days'] == 30
    assert settings['log_level'] == 'INFO'

def test_file_overrides_defaults(tmp_path):
    """Test values from the file win and are converted."""
    path = write_settings(tmp_path, "store_backend = Memory\napi_port = 9100\nlog_level = debug\n")
    settings = load_settings_conf(str(path))

    assert settings['store_backend'] == 'memory'
    assert settings['api_port'] == 9100
    assert settings['log_level'] == 'DEBUG'
    assert settings['jwt_algorithm'] == 'HS256'

def test_settings_path_from_environment(tmp_path, monkeypatch):
    """Test $COINTRADE_SETTINGS locates the file."""
    write_settings(tmp_path, "api_host = 127.0.0.1\n")
    monkeypatch.setenv('COINTRADE_SETTINGS', str(tmp_path))

    assert load_settings_conf()['api_host'] == '127.0.0.1'

def test_postgres_backend_requires_db_url(tmp_path):
    """Test db_url cannot be blanked out for the postgres backend."""
    path = write_settings(tmp_path, "db_url =\n")
    with pytest.raises(SettingsError) as exc_info:
        load_settings_conf(str(path))
    assert 'db_url' in str(exc_info.value)

def test_malformed_file(tmp_path):
    """Test a file that is not INI is reported as a settings error."""
    path = tmp_path / 'settings.conf'
    path.write_text("this is not an ini file\n")
    with pytest.raises(SettingsError):
        load_settings_conf(str(path))

@pytest.mark.parametrize("key,value", [
    ('api_port', 'eighty'),
    ('api_port', '70000'),
    ('session_expiry_days', '0'),
    ('db_max_pool_size', '1'),
    ('store_backend', 'redis'),
    ('log_level', 'LOUD'),
])
def test_invalid_values(key, value):
    """Test every invalid value is reported."""
    settings = dict(DEFAULTS)
    settings[key] = value
    with pytest.raises(SettingsError) as exc_info:
        validate_settings(settings)
    assert key in str(exc_info.value)
