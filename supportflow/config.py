"""
SupportFlow AI - Configuration Management
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # FastAPI
    fastapi_env: str = "development"
    fastapi_host: str = "0.0.0.0"
    fastapi_port: int = 8000

    # LLM
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 30.0

    # Ticket categorization
    categorization_temperature: float = 0.3
    categorization_max_tokens: int = 300

    # Reply suggestions
    suggestion_temperature: float = 0.7
    suggestion_max_tokens: int = 800
    suggestion_context_messages: int = 10

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""

    # Document store backend: supabase | memory
    document_store_backend: str = "supabase"

    # Database webhook shared secret
    webhook_secret: str = ""

    # Client stores
    ticket_subscription_limit: int = 100
    message_edit_window_seconds: int = 300

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False
    )

    @property
    def SUPABASE_ADMIN_KEY(self) -> str:
        """Service role key when configured, anon key otherwise"""
        return self.supabase_service_role_key or self.supabase_key


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
