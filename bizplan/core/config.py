from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_api_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openrouter_default_model: str = "qwen/qwen2.5-vl-72b-instruct:free"
    openrouter_referer: str = "http://localhost:3001"
    openrouter_title: str = "Business Plan Generator"

    # Gateway scheduling
    gateway_rpm: int = 2  # Successful dispatches per 60s window
    gateway_max_concurrent: int = 2  # Submissions allowed to kick the dispatch loop
    gateway_max_retries: int = 5  # 429 retries before RateLimitExceeded
    gateway_base_retry_delay: float = 10.0  # Seconds, doubled per retry
    gateway_request_timeout: float = 60.0
    gateway_temperature: float = 0.7
    gateway_max_tokens: int = 4096

    # App
    app_env: str = "development"
    app_debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @field_validator("gateway_rpm", "gateway_max_concurrent")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if not settings.openrouter_api_key:
        errors.append("OPENROUTER_API_KEY must be set")

    if settings.gateway_max_retries < 0:
        errors.append("GATEWAY_MAX_RETRIES must not be negative")

    if settings.gateway_request_timeout <= 0:
        errors.append("GATEWAY_REQUEST_TIMEOUT must be positive")

    if settings.app_env == "production":
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
