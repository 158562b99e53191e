#!/usr/bin/env python3
"""
Migrator Test Configuration - PyTest Configuration and Fixtures

Fake source/target keyspaces, a shared key store, a RunContext factory, and
isolation of the MIGRATOR_* environment for every test.
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.secure_config import ConfigManager
from core.key_store import KeyStore
from core.run_context import RunContext
from tests.fakes import FakeCassandra


@pytest.fixture
def source():
    return FakeCassandra()


@pytest.fixture
def target():
    return FakeCassandra()


@pytest.fixture
def key_store():
    return KeyStore()


@pytest.fixture
def make_context(source, target, key_store):
    """Factory for a RunContext over the fake source and target"""
    def _make(**overrides) -> RunContext:
        kwargs = dict(source=source, target=target, key_store=key_store)
        kwargs.update(overrides)
        return RunContext(**kwargs)
    return _make


@pytest.fixture(autouse=True)
def clean_migrator_env(monkeypatch, tmp_path):
    """Isolate every test from MIGRATOR_* variables and the cached config"""
    for name in list(os.environ):
        if name.startswith('MIGRATOR_'):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('MIGRATOR_HOME', str(tmp_path))
    ConfigManager.reset()
    yield
    ConfigManager.reset()
