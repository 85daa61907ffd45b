"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Backend-as-a-service (REST + auth + realtime) ──────────────────────
    baas_url: str = "http://localhost:54321"
    baas_anon_key: str = ""
    baas_timeout: float = 10.0           # transport default, no retries

    @property
    def baas_realtime_url(self) -> str:
        base = self.baas_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket"

    # ── Sessions ───────────────────────────────────────────────────────────
    redis_url: Optional[str] = None      # unset → in-memory session store
    session_ttl: int = 7 * 86400
    session_key_prefix: str = "session:"

    # ── View sizes ─────────────────────────────────────────────────────────
    feed_limit: int = 50
    profile_happenings_limit: int = 20
    dev_happenings_limit: int = 100
    manage_user_happenings_limit: int = 50
    search_limit: int = 25

    # ── Rules ──────────────────────────────────────────────────────────────
    hidden_users_max: int = 10
    bio_max_length: int = 250
    realtime_debounce_seconds: float = 0.5
    realtime_heartbeat_seconds: float = 25.0

    # ── Roles ──────────────────────────────────────────────────────────────
    dev_usernames: list[str] = ["devadmin"]
    dev_emails: list[str] = []
    view_only_usernames: list[str] = ["everett"]

    password_reset_redirect_url: Optional[str] = None

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "unfriendable-web"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
