import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    ws_origin: str = "*"
    log_level: str = "INFO"

    # alert sinks
    notify_url: Optional[str] = None
    events_db_url: str = "sqlite://"

    # evaluation cycle; interval <= 0 disables the background sweep
    evaluation_interval: float = 5.0
    evaluation_lookback_ms: int = 3_600_000
    rapid_drop_interval_ms: int = 600_000

    # broadcast fan-out
    broadcast_queue_size: int = 256
    send_timeout: float = 2.0

    # client
    reconnect_delay: float = 1.0
    max_reconnect_attempts: int = 10

    preload_dir: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=os.getenv("VITALWATCH_HOST", "0.0.0.0"),
            port=_env_int("VITALWATCH_PORT", 8080),
            ws_origin=os.getenv("WS_ORIGIN", "*"),
            log_level=os.getenv("VITALWATCH_LOG_LEVEL", "INFO"),
            notify_url=os.getenv("NOTIFY_URL") or None,
            events_db_url=os.getenv("VITALWATCH_EVENTS_DB", "sqlite://"),
            evaluation_interval=_env_float("VITALWATCH_EVAL_INTERVAL", 5.0),
            evaluation_lookback_ms=_env_int("VITALWATCH_EVAL_LOOKBACK_MS", 3_600_000),
            rapid_drop_interval_ms=_env_int("VITALWATCH_RAPID_DROP_MS", 600_000),
            broadcast_queue_size=_env_int("VITALWATCH_BROADCAST_QUEUE", 256),
            send_timeout=_env_float("VITALWATCH_SEND_TIMEOUT", 2.0),
            reconnect_delay=_env_float("VITALWATCH_RECONNECT_DELAY", 1.0),
            max_reconnect_attempts=_env_int("VITALWATCH_RECONNECT_ATTEMPTS", 10),
            preload_dir=os.getenv("VITALWATCH_PRELOAD_DIR") or None,
        )
