from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List


class Settings(BaseSettings):

    ROOT_DIR: Path = Path(__file__).parent.parent.parent.parent

    # Storage ("" keeps everything in process memory)
    DATABASE_URL: str = ""
    DATABASE_ECHO: bool = False

    # Message log
    MESSAGE_RETENTION: int = 0  # keep the N most recent messages (0 = unbounded)
    MESSAGE_MAX_LENGTH: int = 2000
    MESSAGES_DEFAULT_LIMIT: int = 50
    MESSAGES_MAX_LIMIT: int = 100
    HISTORY_REPLAY_SIZE: int = 100

    # Presence
    PRESENCE_TIMEOUT: float = 120.0  # seconds without activity before offline

    # Rate limits (count per window seconds)
    RATE_LIMIT_MESSAGES: int = 30
    RATE_LIMIT_MESSAGES_WINDOW: float = 60.0
    RATE_LIMIT_REGISTER: int = 5
    RATE_LIMIT_REGISTER_WINDOW: float = 3600.0
    RATE_LIMIT_REQUESTS: int = 300
    RATE_LIMIT_REQUESTS_WINDOW: float = 60.0
    RATE_LIMIT_SWEEP_INTERVAL: float = 60.0

    # Live feed
    STREAM_MAX_CONNECTIONS: int = 1000
    STREAM_MAX_PER_CLIENT: int = 5
    STREAM_QUEUE_SIZE: int = 256
    STREAM_PING_INTERVAL: float = 15.0
    STATS_INTERVAL: float = 10.0

    # Observability
    OTLP_TRACE_ENDPOINT: str = ""
    OTLP_METRIC_ENDPOINT: str = ""
    OTEL_CONSOLE_TRACES: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

settings = Settings()
if __name__ == "__main__":
    settings = Settings()
    print(settings.model_dump_json())
