"""
Configuration management for the BizPulse CRM intelligence service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "BizPulse CRM Intelligence"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Hosted backend (PostgREST-style RPC + table endpoints)
    backend_url: str = "http://localhost:54321"
    backend_api_key: str = ""
    backend_access_token: Optional[str] = None  # user session JWT; falls back to api key
    backend_schema: str = "public"
    request_timeout_seconds: float = 15.0

    # Realtime change feed
    realtime_url: Optional[str] = None  # derived from backend_url when unset
    realtime_heartbeat_seconds: float = 30.0
    realtime_reconnect_seconds: float = 5.0
    enable_realtime: bool = True
    realtime_year: Optional[int] = None  # None = current calendar year

    # Meeting reminders
    enable_meeting_notifications: bool = True
    meeting_poll_interval_seconds: int = 10
    meeting_user_id: Optional[str] = None

    # Business calendar
    timezone: str = "Asia/Kolkata"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def resolved_realtime_url(self) -> str:
        """Websocket endpoint of the change feed"""
        if self.realtime_url:
            return self.realtime_url
        base = self.backend_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
