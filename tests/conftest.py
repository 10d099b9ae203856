"""
Pytest configuration and fixtures for Roomseal tests.

Provides common fixtures and test utilities for unit and integration tests.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from roomseal.identity import IdentityKeyring
from roomseal.room_key import RoomKey, derive_room_key

ROOM_CODE = "AB12C9"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path
    """
    tmp = Path(tempfile.mkdtemp(prefix="roomseal_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def alice() -> IdentityKeyring:
    """Initialized keyring for the room creator."""
    return IdentityKeyring().initialize()


@pytest.fixture
def bob() -> IdentityKeyring:
    """Initialized keyring for a member who joins later."""
    return IdentityKeyring().initialize()


@pytest.fixture
def carol() -> IdentityKeyring:
    """Initialized keyring for an outsider."""
    return IdentityKeyring().initialize()


@pytest.fixture
def room_key(alice: IdentityKeyring, bob: IdentityKeyring) -> RoomKey:
    """Room key for the Alice + Bob membership snapshot."""
    return derive_room_key(ROOM_CODE, [alice.export_public_key(), bob.export_public_key()])


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove ROOMSEAL_* variables so config tests see only what they set."""
    import os

    for name in list(os.environ):
        if name.startswith("ROOMSEAL_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def flip_bit():
    """Return a helper that copies data with one bit inverted."""

    def _flip(data: bytes, bit: int) -> bytes:
        buf = bytearray(data)
        buf[bit // 8] ^= 1 << (bit % 8)
        return bytes(buf)

    return _flip


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
