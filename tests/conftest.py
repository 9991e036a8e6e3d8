"""
Shared fixtures for the wallet stream tests.
"""
import pytest

from wallet_stream.config import load_stream_config

from .helpers import API_KEYS, FakeClock, FakeConnector, FakeHelius


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stream_config():
    return load_stream_config(overrides={
        "api_keys": list(API_KEYS),
        "rate_limit": {"min_interval_seconds": 1.2},
        "stats_interval_seconds": 60,
    })


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def fake_helius():
    return FakeHelius()
