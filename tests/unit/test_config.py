import pytest

from app.core.config import Settings


def test_defaults_are_valid() -> None:
    settings = Settings(_env_file=None)

    settings.validate_security_settings()
    settings.validate_realtime_settings()
    assert settings.ws_send_buffer_size == 256
    assert settings.ws_ping_interval_seconds < settings.ws_read_timeout_seconds


def test_comma_separated_lists_are_trimmed() -> None:
    settings = Settings(
        _env_file=None,
        cors_allowed_origins_raw=" https://a.example , ,https://b.example",
        trusted_hosts_raw="api.example,  localhost",
    )

    assert settings.cors_allowed_origins == ["https://a.example", "https://b.example"]
    assert settings.trusted_hosts == ["api.example", "localhost"]


def test_production_rejects_wildcards() -> None:
    settings = Settings(_env_file=None, app_env="production", cors_allowed_origins_raw="*")

    with pytest.raises(ValueError, match="Wildcard CORS"):
        settings.validate_security_settings()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WS_UPDATE_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("GTFS_DATA_PATH", "/srv/gtfs")

    settings = Settings(_env_file=None)

    assert settings.ws_update_interval_seconds == 2.5
    assert settings.gtfs_data_path == "/srv/gtfs"


@pytest.mark.parametrize(
    "overrides",
    [
        {"ws_update_interval_seconds": 0},
        {"ws_send_buffer_size": 0},
        {"ws_hub_intake_size": 0},
        {"ws_max_message_bytes": 0},
        {"ws_write_timeout_seconds": 0},
        {"ws_ping_interval_seconds": 60, "ws_read_timeout_seconds": 60},
    ],
)
def test_invalid_realtime_settings(overrides: dict[str, float]) -> None:
    settings = Settings(_env_file=None, **overrides)

    with pytest.raises(ValueError):
        settings.validate_realtime_settings()
