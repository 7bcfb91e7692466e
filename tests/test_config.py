"""Tests for process configuration loading."""

import pytest
from pydantic import ValidationError

from bikeshare.config import BikeShareSettings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "BIKESHARE_LOCK_TIMEOUT_SECONDS",
        "BIKESHARE_LEDGER_SIZE",
        "BIKESHARE_EVENT_SINKS",
        "BIKESHARE_SEED_PATH",
        "BIKESHARE_HOST",
        "BIKESHARE_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestBikeShareSettings:
    """Tests for BikeShareSettings."""

    def test_defaults(self):
        """Test that the service starts without any environment."""
        config = get_settings()

        assert config.lock_timeout_seconds == 30.0
        assert config.ledger_size == 1000
        assert config.event_sinks == ["logging", "metrics"]
        assert config.seed_path is None
        assert config.port == 8080

    def test_load_from_env(self, monkeypatch):
        """Test that BIKESHARE_ variables override defaults."""
        monkeypatch.setenv("BIKESHARE_LOCK_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("BIKESHARE_SEED_PATH", "/data/workbook.json")
        monkeypatch.setenv("BIKESHARE_EVENT_SINKS", '["Logging"]')

        config = get_settings()

        assert config.lock_timeout_seconds == 2.5
        assert config.seed_path == "/data/workbook.json"
        assert config.event_sinks == ["logging"]

    @pytest.mark.parametrize("timeout", ["0", "-1"])
    def test_lock_timeout_must_be_positive(self, monkeypatch, timeout):
        monkeypatch.setenv("BIKESHARE_LOCK_TIMEOUT_SECONDS", timeout)
        with pytest.raises(ValidationError):
            get_settings()

    def test_unknown_event_sink_rejected(self):
        with pytest.raises(ValidationError):
            BikeShareSettings(event_sinks=["logging", "carrier-pigeon"])

    def test_ledger_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            BikeShareSettings(ledger_size=0)

    def test_port_range(self):
        with pytest.raises(ValidationError):
            BikeShareSettings(port=70000)
