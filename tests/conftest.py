"""Pytest configuration and shared fixtures for cose-envelope tests."""

from collections.abc import Generator

import pytest

from cose_envelope.config import get_settings
from cose_envelope.curves import P_256, X25519
from cose_envelope.keys import EC2Key, OKPKey, SymmetricKey


@pytest.fixture(autouse=True)
def fresh_settings() -> Generator[None, None, None]:
    """Drop cached settings so environment overrides in a test take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def p256_receiver() -> EC2Key:
    """P-256 key pair of the message receiver."""
    return EC2Key.generate_key(P_256)


@pytest.fixture(scope="session")
def p256_sender() -> EC2Key:
    """P-256 static key pair of the message sender."""
    return EC2Key.generate_key(P_256)


@pytest.fixture(scope="session")
def x25519_receiver() -> OKPKey:
    """X25519 key pair of the message receiver."""
    return OKPKey.generate_key(X25519)


@pytest.fixture
def shared_key_32() -> SymmetricKey:
    """A fixed 32-byte pre-shared key."""
    return SymmetricKey(bytes(range(32)))


@pytest.fixture
def kek_16() -> SymmetricKey:
    """A fixed 16-byte key-encryption key."""
    return SymmetricKey(bytes(range(100, 116)))
