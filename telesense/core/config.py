from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    MODEL_VERSION: str = "1.0.0"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    # --- Behavior detection ---
    ACCIDENT_G_FORCE_THRESHOLD: float = 5.0
    HARSH_BRAKING_G_FORCE_THRESHOLD: float = 0.4
    SPEEDING_TOLERANCE_MPH: float = 5.0
    CORNERING_LATERAL_G_THRESHOLD: float = 0.3

    # --- Intent classification gate ---
    INTENT_CLASSIFICATION_ENABLED: bool = True
    INTENT_G_FORCE_THRESHOLD: float = 1.5
    INTENT_SPEED_EXCESS_THRESHOLD: float = 25.0
    INTENT_LATERAL_G_THRESHOLD: float = 0.6

    # --- External reasoning service (OpenAI-compatible chat completions) ---
    REASONING_BASE_URL: str = "http://localhost:11434/v1"
    REASONING_API_KEY: str = ""
    REASONING_MODEL: str = "gpt-4o-mini"
    REASONING_TIMEOUT_SECONDS: float = 5.0
    REASONING_MAX_CONCURRENCY: int = 8

    # --- Pipeline / output ---
    PROCESSING_WORKERS: int = 8
    BATCH_MAX_ITEMS: int = 500
    # "log" writes records as JSON lines, "memory" keeps them in a bounded buffer.
    SINK_BACKEND: str = "log"
    MEMORY_SINK_CAPACITY: int = 1000

    # --- Live statistics ---
    RECENT_EVENTS_CAPACITY: int = 50
    TOP_RISK_DRIVERS: int = 5
    BROADCAST_INTERVAL_SECONDS: float = 1.0
    BROADCAST_SEND_TIMEOUT_SECONDS: float = 2.0
    HEALTH_STALE_AFTER_SECONDS: float = 300.0

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
