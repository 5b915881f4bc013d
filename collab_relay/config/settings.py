"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Relay settings with defaults for development."""

    # Server
    relay_host: str = "0.0.0.0"
    relay_port: int = 3000
    relay_version: str = "0.1.0"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Sessions
    session_id_length: int = 6  # Short enough to read out loud in a classroom
    max_name_length: int = 64  # Display names are truncated beyond this

    # Liveness - one probe cycle per interval, eviction after one missed pong
    liveness_interval: float = 30.0

    # WebSocket
    ws_receive_timeout: float = 90.0  # 3x the liveness interval
    ws_max_message_size: int = 64 * 1024  # 64 KB, answers carry whole files
    ws_outbound_queue_size: int = 256  # Pending events per connection before dropping
    ws_max_total_connections: int = 1000

    # Session history (empty URL disables the recorder)
    history_database_url: str = ""
    history_queue_size: int = 1000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def history_enabled(self) -> bool:
        """Whether the session history recorder should run."""
        return bool(self.history_database_url)

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings that must differ from development defaults in production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if self.liveness_interval >= self.ws_receive_timeout:
                errors.append(
                    "WS_RECEIVE_TIMEOUT must be longer than LIVENESS_INTERVAL"
                )

        if self.session_id_length < 4:
            errors.append("SESSION_ID_LENGTH must be at least 4 characters")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
