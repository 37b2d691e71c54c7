import os
from pydantic_settings import BaseSettings
from pydantic import Field



class Settings(BaseSettings):
    """
    Application settings with validation.
    Uses Pydantic Settings for automatic env var loading and type validation.
    """

    # --- Model Configuration ---
    chat_model: str = Field(
        default="gpt-4o-mini",
        description="Conversational LLM for specialists and general chat",
    )

    extraction_model: str = Field(
        default="gpt-4o-mini",
        description="Fast LLM for classification, extraction and confirmation",
    )

    action_model: str | None = Field(
        default=None,
        description="Optional LLM that plans structured actions (model-assisted tier)",
    )

    embeddings_provider: str = Field(
        default="openai",
        description="Embeddings provider for the memory store (openai or google)",
    )

    embeddings_model: str = Field(
        default="text-embedding-3-small",
        description="Embeddings model name",
    )

    # --- LLM Service Configuration ---
    llm_timeout: int = Field(
        default=30,
        description="Timeout in seconds for LLM calls",
        ge=5,
        le=120,
    )
    llm_max_retries: int = Field(
        default=2,
        description="Attempts per LLM call (2 means a single retry)",
        ge=1,
        le=2,
    )
    llm_rate_limit: int = Field(
        default=3,
        description="Maximum concurrent LLM requests (rate limiting)",
        ge=1,
        le=10,
    )
    embeddings_cache_size: int = Field(
        default=100,
        description="LRU cache size for embeddings queries",
        ge=0,
        le=1000,
    )

    # --- Routing Configuration ---
    routing_confidence_threshold: float = Field(
        default=0.6,
        description="Minimum specialist confidence to take over from general chat",
        ge=0.0,
        le=1.0,
    )
    confirmation_confidence_threshold: float = Field(
        default=0.6,
        description="Minimum confidence for semantic confirmation detection",
        ge=0.0,
        le=1.0,
    )

    # --- Conversation Memory ---
    memory_capacity: int = Field(
        default=20,
        description="Turns kept per conversation window",
        ge=10,
        le=50,
    )
    memory_context_turns: int = Field(
        default=5,
        description="Turns rendered into the context message",
        ge=1,
        le=20,
    )
    memory_truncate_chars: int = Field(
        default=100,
        description="Characters kept per turn in the context message",
        ge=20,
        le=1000,
    )
    memory_top_k: int = Field(
        default=5,
        description="Long-term memories injected into general chat",
        ge=0,
        le=20,
    )

    # --- Persistence ---
    persistence_timeout: int = Field(
        default=10,
        description="Timeout in seconds for persistence and memory store calls",
        ge=1,
        le=60,
    )
    guest_owner_email: str = Field(
        default="direct_chat_user@example.com",
        description="Email of the canonical guest owner record",
    )

    # --- API Keys (validated when the orchestrator is built) ---
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    google_api_key: str | None = Field(default=None, description="Google API key for Gemini")
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_service_key: str | None = Field(
        default=None, description="Supabase service key"
    )

    # --- LangSmith (Optional) ---
    langchain_tracing_v2: str = Field(
        default="false", description="Enable LangSmith tracing"
    )
    langchain_api_key: str | None = Field(
        default=None, description="LangSmith API key"
    )
    langchain_project: str | None = Field(
        default=None, description="LangSmith project name"
    )

    class Config:
        """Pydantic config."""

        env_file = os.getenv("DOTENV_PATH", ".env")
        case_sensitive = False
        extra = "ignore"

    def api_key_for(self, model_name: str) -> str | None:
        """Returns the provider key matching a model identifier."""
        if "gemini" in model_name:
            return self.google_api_key
        return self.openai_api_key


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get or create settings instance.
    Singleton pattern for consistent configuration.

    Returns:
        Settings instance

    Raises:
        ValidationError: If env vars are present but invalid
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def check_env_vars():
    """
    Validates that the credentials needed to build the orchestrator are set.

    Raises:
        ValueError: If a required credential is missing
    """
    current = get_settings()
    missing = []
    for model_name in filter(None, [current.chat_model, current.extraction_model, current.action_model]):
        if not current.api_key_for(model_name):
            missing.append(f"api key for {model_name}")
    if not current.supabase_url or not current.supabase_service_key:
        missing.append("supabase_url / supabase_service_key")

    if missing:
        print(f"❌ Configuration error: missing {', '.join(missing)}")
        raise ValueError(f"Missing configuration: {', '.join(missing)}")
    print("✅ All necessary environment variables are loaded and validated.")
