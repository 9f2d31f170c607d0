"""
Tests for API key encryption at rest.
"""

import pytest
from unittest.mock import patch
from cryptography.fernet import Fernet

from popdash import crypto
from popdash.config import Settings


@pytest.fixture
def fernet_settings():
    settings = Settings(encryption_key=Fernet.generate_key().decode())
    crypto.reset_cipher()
    with patch("popdash.crypto.get_settings", return_value=settings):
        yield settings
    crypto.reset_cipher()


@pytest.fixture
def plaintext_settings():
    settings = Settings(encryption_key="")
    crypto.reset_cipher()
    with patch("popdash.crypto.get_settings", return_value=settings):
        yield settings
    crypto.reset_cipher()


def test_encrypt_round_trip(fernet_settings):
    token = crypto.encrypt_value("pub-key-123456")
    assert token != "pub-key-123456"
    assert crypto.decrypt_value(token) == "pub-key-123456"


def test_undecryptable_value_is_returned_unchanged(fernet_settings):
    """A corrupt stored value degrades to a wrong key instead of raising."""
    assert crypto.decrypt_value("not-a-fernet-token") == "not-a-fernet-token"


def test_passthrough_without_key_in_development(plaintext_settings):
    assert crypto.encrypt_value("pub-key-123456") == "pub-key-123456"
    assert crypto.decrypt_value("pub-key-123456") == "pub-key-123456"


def test_none_passes_through(fernet_settings):
    assert crypto.encrypt_value(None) is None
    assert crypto.decrypt_value(None) is None


def test_mask_key():
    assert crypto.mask_key("") == ""
    assert crypto.mask_key("short") == "••••••••"
    masked = crypto.mask_key("abcdef1234567890wxyz")
    assert masked.startswith("abcdef")
    assert masked.endswith("wxyz")
    assert "1234567890" not in masked
