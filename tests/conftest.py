"""Pytest configuration for mcumgr client tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

import pytest

from mcumgr.config.settings import ClientConfig
from mcumgr.events import EventEmitter
from tests.mocks import FakeTransport, ManualScheduler, build_image


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def events() -> EventEmitter:
    return EventEmitter()


@pytest.fixture()
def client_config() -> ClientConfig:
    return ClientConfig(mtu=256, connect_attempts=3, reconnect_delay=0.0)


@pytest.fixture()
def image() -> bytes:
    return build_image(bytes(range(256)) * 4)
