"""Unit tests for runtime settings."""

import pytest
from pydantic import ValidationError

from cose_envelope.config import CoseSettings, get_settings


class TestSettings:
    """Test cases for environment-driven settings."""

    @pytest.mark.unit
    def test_defaults(self):
        """Defaults apply without environment overrides."""
        settings = CoseSettings()
        assert settings.max_recipient_depth == 16
        assert settings.allow_unknown_attributes is False

    @pytest.mark.unit
    def test_environment_override(self, monkeypatch):
        """Values are read from COSE_ENVELOPE_* variables."""
        monkeypatch.setenv("COSE_ENVELOPE_MAX_RECIPIENT_DEPTH", "3")
        monkeypatch.setenv("COSE_ENVELOPE_ALLOW_UNKNOWN_ATTRIBUTES", "1")
        settings = CoseSettings()
        assert settings.max_recipient_depth == 3
        assert settings.allow_unknown_attributes is True

    @pytest.mark.unit
    def test_depth_must_be_positive(self, monkeypatch):
        """A recipient depth below one is rejected."""
        monkeypatch.setenv("COSE_ENVELOPE_MAX_RECIPIENT_DEPTH", "0")
        with pytest.raises(ValidationError):
            CoseSettings()

    @pytest.mark.unit
    def test_cached(self):
        """get_settings() returns one instance until the cache is cleared."""
        first = get_settings()
        assert get_settings() is first
        get_settings.cache_clear()
        assert get_settings() is not first
