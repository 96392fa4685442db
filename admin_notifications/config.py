# config.py
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read once from the environment (and .env)."""

    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    supabase_jwt_secret: Optional[str] = None

    # "rest" talks to PostgREST, "sql" connects to the database directly
    record_store: str = "rest"
    database_url: str = "sqlite:///./admin_notifications.db"

    poll_interval_seconds: float = 5.0
    realtime_reconnect_seconds: float = 2.0
    realtime_heartbeat_seconds: float = 25.0

    language: str = "fa"
    require_auth: bool = True
    staff_roles: Tuple[str, ...] = field(default=("admin", "editor"))
    log_level: str = "INFO"

    @property
    def realtime_url(self) -> str:
        base = self.supabase_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket?apikey={self.supabase_anon_key}&vsn=1.0.0"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            supabase_url=os.getenv("SUPABASE_URL", cls.supabase_url),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET") or None,
            record_store=os.getenv("RECORD_STORE", "rest").lower(),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "5")),
            realtime_reconnect_seconds=float(os.getenv("REALTIME_RECONNECT_SECONDS", "2")),
            realtime_heartbeat_seconds=float(os.getenv("REALTIME_HEARTBEAT_SECONDS", "25")),
            language=os.getenv("LANGUAGE", "fa"),
            require_auth=_env_bool("REQUIRE_AUTH", "True"),
            staff_roles=_env_list("STAFF_ROLES", "admin,editor"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
