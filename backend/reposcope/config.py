from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "RepoScope Backend"
    env: str = "development"
    log_level: str = "INFO"
    database_url: str
    redis_url: str | None = None

    github_client_id: str = ""
    github_client_secret: str = ""
    github_oauth_redirect_uri: AnyHttpUrl = "http://localhost:8000/api/v1/auth/callback"
    github_token: str | None = None
    github_api_base: AnyHttpUrl = "https://api.github.com"
    github_timeout_seconds: float = 10.0
    github_cache_ttl_seconds: int = 300
    frontend_url: AnyHttpUrl = "http://localhost:3000"

    # AI analysis routing (OpenAI-compatible chat completions)
    openrouter_api_key: str | None = None
    openrouter_base_url: AnyHttpUrl = "https://openrouter.ai/api/v1"
    llm_model: str = "google/gemini-flash-1.5"
    llm_temperature: float = 0.2
    llm_timeout_seconds: int = 120
    analysis_worker_threads: int = 4

    jwt_secret: str
    jwt_access_ttl_minutes: int = 60

    rate_limit_window_seconds: int = 60
    rate_limit_auth_per_window: int = 30
    rate_limit_guest_per_window: int = 10

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
