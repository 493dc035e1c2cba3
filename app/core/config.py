from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    gtfs_data_path: str = "data/gtfs"
    gtfs_timezone: str = "Europe/Zurich"
    live_trains_limit: int = 30

    ws_update_interval_seconds: float = 5.0
    ws_send_buffer_size: int = 256
    ws_hub_intake_size: int = 256
    ws_max_message_bytes: int = 512 * 1024
    ws_read_timeout_seconds: float = 60.0
    ws_ping_interval_seconds: float = 54.0
    ws_write_timeout_seconds: float = 10.0

    cors_allowed_origins_raw: str = "http://localhost:3000,http://localhost:3001"
    trusted_hosts_raw: str = "127.0.0.1,localhost"
    force_https: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def cors_allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.cors_allowed_origins_raw.split(",")
            if origin.strip()
        ]

    @property
    def trusted_hosts(self) -> list[str]:
        return [
            host.strip() for host in self.trusted_hosts_raw.split(",") if host.strip()
        ]

    def validate_security_settings(self) -> None:
        if not self.is_production:
            return

        if not self.cors_allowed_origins:
            raise ValueError(
                "CORS_ALLOWED_ORIGINS_RAW must define explicit origins in production."
            )
        if "*" in self.cors_allowed_origins:
            raise ValueError("Wildcard CORS origin is not allowed in production.")
        if not self.trusted_hosts:
            raise ValueError(
                "TRUSTED_HOSTS_RAW must define explicit hosts in production."
            )
        if "*" in self.trusted_hosts:
            raise ValueError("Wildcard trusted host is not allowed in production.")

    def validate_realtime_settings(self) -> None:
        if self.ws_update_interval_seconds <= 0:
            raise ValueError("WS_UPDATE_INTERVAL_SECONDS must be positive.")
        if self.ws_send_buffer_size < 1 or self.ws_hub_intake_size < 1:
            raise ValueError("WebSocket buffer sizes must be at least 1.")
        if self.ws_max_message_bytes < 1:
            raise ValueError("WS_MAX_MESSAGE_BYTES must be positive.")
        if self.ws_write_timeout_seconds <= 0:
            raise ValueError("WS_WRITE_TIMEOUT_SECONDS must be positive.")
        if not 0 < self.ws_ping_interval_seconds < self.ws_read_timeout_seconds:
            raise ValueError(
                "WS_PING_INTERVAL_SECONDS must be positive and shorter than "
                "WS_READ_TIMEOUT_SECONDS."
            )


@lru_cache
def get_settings() -> Settings:
    return Settings()
