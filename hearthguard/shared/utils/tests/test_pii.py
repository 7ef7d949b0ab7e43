"""Tests for identifier hashing."""
import pytest

from hearthguard.shared.utils import pii
from hearthguard.shared.utils.pii import configure_pii_salt, configure_pii_salt_from_env, hash_pii


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


class TestConfigurePiiSalt:

    def test_short_salt_rejected(self):
        with pytest.raises(ValueError):
            configure_pii_salt("short")

    def test_empty_salt_rejected(self):
        with pytest.raises(ValueError):
            configure_pii_salt("")


class TestHashPii:

    def test_hash_is_stable(self):
        assert hash_pii("guardian_1") == hash_pii("guardian_1")

    def test_hash_differs_per_value(self):
        assert hash_pii("guardian_1") != hash_pii("guardian_2")

    def test_hash_is_hex_digest(self):
        digest = hash_pii("child_1")
        assert len(digest) == 64
        assert "child_1" not in digest

    def test_hash_depends_on_salt(self):
        before = hash_pii("child_1")
        configure_pii_salt("another_salt_that_is_also_32_characters_long")
        assert hash_pii("child_1") != before

    def test_unconfigured_salt_raises(self, monkeypatch):
        monkeypatch.setattr(pii, "_PII_SALT", None)
        with pytest.raises(RuntimeError):
            hash_pii("child_1")


class TestConfigureFromEnv:

    def test_uses_env_salt(self, monkeypatch):
        monkeypatch.setenv("PII_HASH_SALT", "env_salt_that_is_comfortably_over_32_chars")
        configure_pii_salt_from_env()
        assert pii._PII_SALT == "env_salt_that_is_comfortably_over_32_chars"

    def test_falls_back_to_dev_salt(self, monkeypatch):
        monkeypatch.delenv("PII_HASH_SALT", raising=False)
        configure_pii_salt_from_env()
        assert pii._PII_SALT == pii.DEV_SALT

    def test_short_env_salt_rejected(self, monkeypatch):
        monkeypatch.setenv("PII_HASH_SALT", "too_short")
        with pytest.raises(ValueError):
            configure_pii_salt_from_env()
