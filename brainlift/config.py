from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Orchestration
    max_concurrent: int = 3
    max_retries: int = 3
    per_job_timeout_ms: int = 300000
    max_sources_per_job: int = 5
    retry_backoff_ms: int = 1000
    event_queue_size: int = 256

    # Tavily
    tavily_api_key: str = ""
    search_max_results_per_query: int = 5
    search_depth: str = "advanced"  # basic | advanced

    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4o-mini"
    synthesis_max_tokens: int = 2048

    # App
    cors_origins: str = "http://localhost:5173"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
