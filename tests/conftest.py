"""Shared fixtures for the proxy test suite."""

import pytest

from core.config_manager import ConfigManager
from core.key_store import KeyStore
from core.proxy.rewriters.base import RewriteContext

PROXY_BASE = 'http://proxy.test'


class FakeClock:
    """Controllable millisecond clock"""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context():
    return RewriteContext(base_url='https://example.com/', proxy_base=PROXY_BASE)


@pytest.fixture
def make_config(tmp_path):
    def factory(**overrides):
        config = ConfigManager(config_path=tmp_path / 'config.json', environ={})
        config.set('access.keys_file', str(tmp_path / 'keys.json'))
        for key, value in overrides.items():
            config.set(key.replace('__', '.'), value)
        return config

    return factory


@pytest.fixture
def key_store(tmp_path, clock):
    return KeyStore(tmp_path / 'keys.json', clock=clock)
