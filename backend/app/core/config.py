from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api"
    PROJECT_NAME: str = "Architecture Diagram Generator"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    FRONTEND_HOST: str = "http://localhost:5173"
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    # OpenAI-compatible chat completions provider
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str | None = None
    MODEL_DEFAULT: str = "gpt-4o-mini"
    GENERATION_TEMPERATURE: float = 0.15
    GENERATION_MAX_TOKENS: int = 1200
    PROBLEM_FALLBACK_CHARS: int = 600

    # Mermaid rendering sandbox (headless Chromium via Playwright)
    MERMAID_SCRIPT_URL: str = "https://cdn.jsdelivr.net/npm/mermaid@11/dist/mermaid.min.js"
    MERMAID_SCRIPT_PATH: str | None = None
    MERMAID_THEME: str = "default"
    RENDER_TIMEOUT_SECONDS: float = 30.0
    RENDER_MAX_CONCURRENCY: int = 4
    SANDBOX_BROWSER_ARGS: list[str] = ["--no-sandbox"]

    EXPORT_TIMEOUT_SECONDS: float = 60.0


settings = Settings()  # type: ignore
