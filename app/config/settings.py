"""
Application Configuration
Centralized configuration management using environment variables
"""
import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables"""

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Supabase Configuration
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")  # Anon key for client
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "")

    # Table store backend: "supabase" or "memory" (empty = supabase when configured)
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "").lower()

    # AI Responder Configuration
    AI_RESPONDER: str = os.getenv("AI_RESPONDER", "scripted").lower()
    DEFAULT_RESPONSE_DELAY: int = int(os.getenv("DEFAULT_RESPONSE_DELAY", "3"))
    SCRIPTED_REPLIES_PATH: str = os.getenv(
        "SCRIPTED_REPLIES_PATH",
        os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "scripted_replies.json")
    )

    # OpenAI Configuration (only used when AI_RESPONDER=openai)
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL")
    GPT_MODEL: str = os.getenv("GPT_MODEL", "gpt-4o-mini")

    # WhatsApp gateway (Evolution-style API) for outbound delivery
    WHATSAPP_API_URL: str = os.getenv("WHATSAPP_API_URL", "")
    WHATSAPP_API_KEY: Optional[str] = os.getenv("WHATSAPP_API_KEY")
    WHATSAPP_INSTANCE: str = os.getenv("WHATSAPP_INSTANCE", "clinic")

    # Webhook Configuration
    WEBHOOK_SECRET_KEY: str = os.getenv("WEBHOOK_SECRET_KEY", "")
    WEBHOOK_DEDUP_TTL_SECONDS: int = int(os.getenv("WEBHOOK_DEDUP_TTL_SECONDS", "45"))

    # CORS Configuration
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:8080,http://127.0.0.1:8080,http://localhost:5173"
        ).split(",")
        if origin.strip()
    ]

    # WebSocket Configuration
    WEBSOCKET_ENABLED: bool = os.getenv("WEBSOCKET_ENABLED", "true").lower() == "true"
    WEBSOCKET_KEEPALIVE_SECONDS: float = float(os.getenv("WEBSOCKET_KEEPALIVE_SECONDS", "30"))

    @property
    def is_supabase_configured(self) -> bool:
        """Check if Supabase configuration is present"""
        return bool(self.SUPABASE_URL and (self.SUPABASE_SERVICE_KEY or self.SUPABASE_KEY))

    @property
    def is_auth_configured(self) -> bool:
        """Check if JWT verification is possible"""
        return bool(self.SUPABASE_JWT_SECRET)

    @property
    def is_openai_configured(self) -> bool:
        """Check if OpenAI configuration is present"""
        return bool(self.OPENAI_API_KEY)

    @property
    def is_whatsapp_configured(self) -> bool:
        """Check if outbound WhatsApp delivery is configured"""
        return bool(self.WHATSAPP_API_URL)

    @property
    def use_memory_store(self) -> bool:
        """Whether the in-process table store should back the services"""
        if self.STORE_BACKEND:
            return self.STORE_BACKEND == "memory"
        return not self.is_supabase_configured


# Global settings instance
settings = Settings()
