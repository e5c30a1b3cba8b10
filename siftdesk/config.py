"""SiftDesk configuration — loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "SIFTDESK_", "env_file": ".env", "extra": "ignore"}

    # LLM API keys
    google_api_key: str = ""
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    mistral_api_key: str = ""

    # Model selection
    default_provider: str = "GOOGLE_GEMINI"
    default_model: str = "gemini-3-flash-preview"
    system_prompt: str = ""
    max_recent_turns: int = 5

    # Database
    database_path: str = "siftdesk.db"

    # Report cache
    cache_enabled: bool = True
    prompt_version: str = "1.2"

    # Pipeline timing (seconds)
    render_interval: float = 0.1
    link_check_timeout: float = 8.0
    autosave_delay: float = 2.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
