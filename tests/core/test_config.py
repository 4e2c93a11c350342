"""Tests for core configuration."""

import pytest

from contentops.core.config import DEFAULT_MAX_CONCURRENT_UPLOADS, BackendConfig


class TestBackendConfig:
    """Tests for BackendConfig."""

    def test_defaults(self) -> None:
        """Should apply defaults for optional settings."""
        config = BackendConfig(api_url="https://db.example.com", api_key="k")
        assert config.storage_url == ""
        assert config.timeout == 30.0
        assert config.verify_ssl is True
        assert config.max_concurrent_uploads == DEFAULT_MAX_CONCURRENT_UPLOADS

    def test_strips_trailing_slash(self) -> None:
        """Should normalize base URLs."""
        config = BackendConfig(
            api_url="https://db.example.com/",
            api_key="k",
            storage_url="https://files.example.com/",
        )
        assert config.api_url == "https://db.example.com"
        assert config.storage_url == "https://files.example.com"

    def test_realtime_url_secure(self) -> None:
        """Should use wss for https backends."""
        config = BackendConfig(api_url="https://db.example.com", api_key="anon")
        assert config.realtime_url == "wss://db.example.com/realtime/v1/websocket?apikey=anon"
        assert config.is_secure is True

    def test_realtime_url_plain(self) -> None:
        """Should use ws for http backends."""
        config = BackendConfig(api_url="http://localhost:54321", api_key="anon")
        assert config.realtime_url == "ws://localhost:54321/realtime/v1/websocket?apikey=anon"
        assert config.is_secure is False

    def test_rejects_zero_uploads(self) -> None:
        """Should reject a limit below one."""
        with pytest.raises(ValueError):
            BackendConfig(api_url="http://db", api_key="k", max_concurrent_uploads=0)

    def test_unbounded_uploads(self) -> None:
        """Should accept None as unbounded."""
        config = BackendConfig(api_url="http://db", api_key="k", max_concurrent_uploads=None)
        assert config.max_concurrent_uploads is None


class TestBackendConfigFromDict:
    """Tests for BackendConfig.from_dict."""

    def test_from_strings(self) -> None:
        """Should coerce values coming from the environment."""
        config = BackendConfig.from_dict(
            {
                "api_url": "http://db",
                "api_key": "k",
                "timeout": "5",
                "verify_ssl": "false",
                "max_concurrent_uploads": "2",
                "unknown": "ignored",
            }
        )
        assert config.timeout == 5.0
        assert config.verify_ssl is False
        assert config.max_concurrent_uploads == 2

    def test_zero_means_unbounded(self) -> None:
        """Should map a persisted 0 to unbounded."""
        config = BackendConfig.from_dict({"api_url": "http://db", "api_key": "k", "max_concurrent_uploads": 0})
        assert config.max_concurrent_uploads is None

    @pytest.mark.parametrize("data", [{}, {"api_url": "http://db"}, {"api_key": "k"}])
    def test_requires_url_and_key(self, data: dict[str, str]) -> None:
        """Should refuse an incomplete configuration."""
        with pytest.raises(ValueError):
            BackendConfig.from_dict(data)
