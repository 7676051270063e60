"""
Shared pytest fixtures for Smart Skip tests.

Every component is driven by a virtual-time scheduler; no real timers,
audio devices or model downloads are used.
"""

import pytest

from tests.test_doubles import FakePlayer, FakeTap, ManualScheduler


@pytest.fixture
def scheduler():
    """Virtual-time scheduler starting at t=0."""
    return ManualScheduler()


@pytest.fixture
def tap():
    """Fake analysis tap: silent, zero spectrum."""
    return FakeTap()


@pytest.fixture
def primary():
    return FakePlayer("primary")


@pytest.fixture
def backup():
    return FakePlayer("backup")


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Default Config with its capture directory created under tmp_path."""
    monkeypatch.chdir(tmp_path)
    from smart_skip.config import Config
    return Config()
