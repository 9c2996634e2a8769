"""Unit tests for operator settings."""

from ecoperator.types.settings import RECONCILE_REQUEUE_SECONDS, Settings, _getenv


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.reconcile_requeue_seconds == RECONCILE_REQUEUE_SECONDS
        assert settings.ha_poll_steps > 0

    def test_overrides(self):
        settings = Settings(ha_poll_steps=3, operator_version="1.5.0")
        assert settings.ha_poll_steps == 3
        assert settings.operator_version == "1.5.0"


class TestGetenv:
    def test_booleans(self, monkeypatch):
        monkeypatch.setenv("ECOP_TEST_FLAG", "yes")
        assert _getenv("ECOP_TEST_FLAG") is True
        monkeypatch.setenv("ECOP_TEST_FLAG", "0")
        assert _getenv("ECOP_TEST_FLAG") is False

    def test_default(self, monkeypatch):
        monkeypatch.delenv("ECOP_TEST_UNSET", raising=False)
        assert _getenv("ECOP_TEST_UNSET", 5) == 5
