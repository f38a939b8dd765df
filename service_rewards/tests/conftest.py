"""
Shared fixtures for rewards service tests.
"""

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from mocks.key_server.server import MockKeyServer, public_pem


@pytest.fixture
def signing_key():
    """Fresh P-256 private key."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def public_key_pem(signing_key):
    """PEM of the signing key's public half."""
    return public_pem(signing_key)


@pytest.fixture
def key_server():
    """Mock key distribution host with one published key."""
    return MockKeyServer()
