"""Application configuration settings.

This module defines the application-wide settings using Pydantic's BaseSettings.
It allows for loading configurations from environment variables and .env files,
providing type validation and default values.
"""

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings

# Default list of CORS allowed origins
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "https://localhost:3000",
    "https://localhost:8000",
    "http://0.0.0.0:8000",
]


class Settings(BaseSettings):
    """Manages application settings, loading them from environment variables or an .env file.

    Attributes:
        openrouter_api_key: API key for OpenRouter services.
        openrouter_base_url: Base URL of the OpenRouter (OpenAI-compatible) API.
        model_id: Identifier for the language model to be used.
        llm_temperature: Sampling temperature for every completion call.
        llm_max_tokens: Maximum tokens requested per completion.
        app_name: Display name sent to OpenRouter and used in the API title.
        environment: Free-form deployment environment label.
        log_level: Level of the memogen loggers (DEBUG, INFO, ...).
        context_excerpt_chars: Characters of each source document fed to the model as context.
        reference_excerpt_chars: Characters of each source document kept as a provenance excerpt.
        coherence_excerpt_chars: Characters of each generated section sent to the coherence check.
        min_candidate_documents: Minimum number of source documents offered per section.
        enhancement_concurrency: Maximum concurrent enhancement calls within one job.
        cors_allowed_origins: List of allowed origins for CORS.
        LLM_CONNECT_TIMEOUT: LLM client connect timeout in seconds.
        LLM_READ_TIMEOUT: LLM client read timeout in seconds.
    """

    openrouter_api_key: str | None = Field(default=None)
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    model_id: str = Field(default="anthropic/claude-3-opus")
    llm_temperature: float = Field(default=0.3)
    llm_max_tokens: int = Field(default=4000)

    app_name: str = Field(default="InvestDoc AI")
    environment: str = Field(default="development")
    log_level: str = Field(default="DEBUG")

    context_excerpt_chars: int = Field(default=1000)
    reference_excerpt_chars: int = Field(default=300)
    coherence_excerpt_chars: int = Field(default=500)
    min_candidate_documents: int = Field(default=3)
    enhancement_concurrency: int = Field(default=4, ge=1)

    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CORS_ORIGINS),  # Use a copy of the default list
    )

    LLM_CONNECT_TIMEOUT: float = Field(default=10.0, description="LLM client connect timeout in seconds.")
    LLM_READ_TIMEOUT: float = Field(default=180.0, description="LLM client read timeout in seconds.")

    model_config = {
        "env_file": ".env",
        "protected_namespaces": ("settings_",),
        "env_prefix": "",  # No prefix for environment variables
        "extra": "ignore",  # Ignore extra fields
    }

    @field_validator("cors_allowed_origins", mode="before")  # type: ignore
    @classmethod
    def assemble_cors_origins(cls, v: str | list[str] | None) -> list[str]:
        """Assembles the list of CORS allowed origins.

        If 'v' is a string, it splits it by commas. If 'v' is already a list,
        it's used directly. Otherwise, returns the default list of origins.

        Args:
            v: The value from the environment or direct assignment.

        Returns:
            A list of strings representing allowed CORS origins.
        """
        if isinstance(v, str) and v:
            return [origin.strip() for origin in v.split(",")]
        elif isinstance(v, list):
            return v
        # Return the default if env var is empty or not a string/list
        return list(DEFAULT_CORS_ORIGINS)


settings = Settings()
