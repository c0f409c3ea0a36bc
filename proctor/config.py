from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    # Assessment backend
    api_base_url: str = "http://localhost:5000/api"
    api_token: str | None = None
    request_timeout: float = 30.0
    fetch_max_retries: int = 3

    # Session pacing (seconds)
    tick_interval_seconds: float = 1.0
    feedback_delay_seconds: float = 2.5
    result_display_seconds: float = 5.0

    # Service: how long a finished session stays readable before eviction
    finished_session_ttl_seconds: float = 300.0

    # totalTestDuration values below this are minutes, not seconds
    minutes_threshold: int = 100

    # Browser
    playwright_timeout: int = 30000
    headless: bool = False


# Global settings instance
settings = Settings()
