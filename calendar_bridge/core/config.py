"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Calendar Bridge"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all
    public_base_url: str = "http://localhost:8000"  # Reachable by Google for webhooks

    # Header set by the host for authenticated requests (absent for webhooks)
    user_id_header: str = "Mattermost-User-Id"

    # Database
    database_url: str = "sqlite:///./calendar_bridge.db"

    # Google OAuth / Calendar API
    google_client_id: str = ""
    google_client_secret: str = ""
    oauth_redirect_uri: str = ""  # Defaults to <public_base_url>/oauth/complete
    oauth_state_ttl_seconds: int = 600
    google_calendar_id: str = "primary"
    provider_timeout_seconds: float = 10.0
    # Wider than google-auth's own 225s expiry margin
    token_refresh_skew_seconds: int = 300

    # Push notifications
    watch_ttl_seconds: int = 7 * 24 * 3600
    watch_renewal_hours: int = 24

    # Sync settings
    sync_window_days: int = 30

    @property
    def redirect_uri(self) -> str:
        return self.oauth_redirect_uri or f"{self.public_base_url.rstrip('/')}/oauth/complete"

    @property
    def webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/watch"


settings = Settings()
