"""
Application configuration management.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application
    app_env: str = "development"
    log_level: Optional[str] = None  # Overrides the environment default when set
    log_format: str = "console"

    # Text generation provider
    generation_provider: str = "huggingface"

    # HuggingFace
    huggingface_api_key: Optional[str] = None
    huggingface_api_url: str = (
        "https://api-inference.huggingface.co/models/mistralai/Mistral-7B-Instruct-v0.3"
    )

    # Together AI
    together_api_key: Optional[str] = None
    together_api_url: str = "https://api.together.xyz/v1/chat/completions"
    together_model: str = "meta-llama/Meta-Llama-3.1-70B-Instruct"

    # Retry behaviour
    generation_timeout_seconds: float = 30.0
    generation_max_retries: int = 3
    generation_initial_delay_seconds: float = 1.0
    generation_max_wait_hint_seconds: float = 120.0

    # Story backend
    backend_url: str = "http://127.0.0.1:8000"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @property
    def is_test(self) -> bool:
        return self.app_env.lower() == "test"


# Global settings instance
settings = Settings()
