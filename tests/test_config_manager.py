"""Tests for configuration loading and helpers."""

import json

import pytest

from core.config_manager import (
    ConfigManager,
    expiration_to_duration_ms,
    parse_custom_duration,
    parse_size,
)

HOUR = 60 * 60 * 1000
DAY = 24 * HOUR


class TestDefaults:
    def test_default_values(self, tmp_path):
        config = ConfigManager(config_path=tmp_path / 'config.json', environ={})
        assert config.get('server.port') == 3000
        assert config.get('server.host') == '0.0.0.0'
        assert config.get_mount_path() == '/go'
        assert config.get('proxy.timeout_ms') == 30000
        assert config.get_max_request_size() == 50 * 1024 * 1024
        assert config.get('access.require_device_key') is True
        assert config.get('missing.key', 'fallback') == 'fallback'

    def test_keys_file_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv('BREAD_DATA_DIR', str(tmp_path))
        config = ConfigManager(config_path=tmp_path / 'config.json', environ={})
        assert config.get_keys_file() == tmp_path / 'keys.json'


class TestSources:
    def test_file_is_deep_merged(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'proxy': {'timeout_ms': 1000}}), encoding='utf-8')
        config = ConfigManager(config_path=path, environ={})
        assert config.get('proxy.timeout_ms') == 1000
        assert config.get('proxy.mount_path') == '/go'

    def test_broken_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text('{oops', encoding='utf-8')
        config = ConfigManager(config_path=path, environ={})
        assert config.get('server.port') == 3000

    def test_environment_overrides(self, tmp_path):
        config = ConfigManager(config_path=tmp_path / 'config.json', environ={
            'PORT': '8080',
            'PROXY_PATH': 'proxy/',
            'PROXY_TIMEOUT_MS': '5000',
            'MAX_REQUEST_SIZE': '1kb',
            'REQUIRE_DEVICE_KEY': 'false',
            'LOG_LEVEL': 'DEBUG',
        })
        assert config.get('server.port') == 8080
        assert config.get_mount_path() == '/proxy'
        assert config.get('proxy.timeout_ms') == 5000
        assert config.get_max_request_size() == 1024
        assert config.get('access.require_device_key') is False
        assert config.get('logging.level') == 'DEBUG'

    def test_invalid_environment_value_ignored(self, tmp_path):
        config = ConfigManager(config_path=tmp_path / 'config.json', environ={'PORT': 'eighty'})
        assert config.get('server.port') == 3000

    def test_set_and_save(self, tmp_path):
        path = tmp_path / 'nested' / 'config.json'
        config = ConfigManager(config_path=path, environ={})
        assert config.set('server.port', 4000, save=True)

        reloaded = ConfigManager(config_path=path, environ={})
        assert reloaded.get('server.port') == 4000

    def test_reset_to_defaults(self, tmp_path):
        config = ConfigManager(config_path=tmp_path / 'config.json', environ={})
        config.set('proxy.mount_path', '/x')
        assert config.reset_to_defaults()
        assert config.get_mount_path() == '/go'


class TestParsers:
    @pytest.mark.parametrize('value, expected', [
        ('50mb', 50 * 1024 * 1024),
        ('10KB', 10 * 1024),
        ('1gb', 1024 ** 3),
        ('512', 512),
        (2048, 2048),
    ])
    def test_parse_size(self, value, expected):
        assert parse_size(value) == expected

    def test_parse_size_invalid(self):
        with pytest.raises(ValueError):
            parse_size('lots')

    @pytest.mark.parametrize('value, expected', [
        ('30s', 30 * 1000),
        ('2.5m', 150 * 1000),
        ('1.5h', 90 * 60 * 1000),
        ('2d', 2 * DAY),
        ('bogus', None),
        ('', None),
    ])
    def test_parse_custom_duration(self, value, expected):
        assert parse_custom_duration(value) == expected

    def test_expiration_presets(self):
        assert expiration_to_duration_ms('forever') is None
        assert expiration_to_duration_ms(None) is None
        assert expiration_to_duration_ms('24h') == DAY
        assert expiration_to_duration_ms('1m') == 30 * DAY
        assert expiration_to_duration_ms('6m') == 180 * DAY
        assert expiration_to_duration_ms('12h') == 12 * HOUR
