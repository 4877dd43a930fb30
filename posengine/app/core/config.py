from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Local durability store (pending transactions, promotion snapshot)
    LOCAL_DATABASE_URL: str = "sqlite:///./pos_local.db"

    # Remote system of record (PostgREST-style API)
    REMOTE_API_URL: str = "http://localhost:54321"
    REMOTE_API_KEY: str = ""
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Bind address for the `posengine` console script
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    # Terminal identity
    STORE_ID: str = ""

    # Cart recomputation debounce windows
    ADD_DEBOUNCE_MS: int = 300
    CHANGE_DEBOUNCE_MS: int = 150

    # Offline sync
    SYNC_INTERVAL_SECONDS: float = 30.0
    CONNECTIVITY_PROBE_SECONDS: float = 15.0

    # Promotion catalog lifetime for one sale session
    PROMOTION_CACHE_TTL_SECONDS: int = 8 * 60 * 60

    # "timbre" or "none"
    TAX_SCHEME: str = "timbre"

    # Redis / Celery (headless drain worker)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    LOG_LEVEL: str = "INFO"


settings = Settings()
