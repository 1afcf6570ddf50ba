"""
Configuration Management Module

This module handles all application configuration using environment variables
with sensible defaults. It follows the 12-factor app methodology for configuration.

Usage:
    from retailiq.config import settings
    print(settings.elevenlabs.base_url)

Environment variables are loaded from .env file (if present) and can be
overridden by system environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
# This should be called before accessing any environment variables
load_dotenv()


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        The environment variable value or default

    Raises:
        ValueError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """Get an environment variable as boolean."""
    value = get_env(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


@dataclass
class SupabaseConfig:
    """
    Supabase project configuration.

    The REST credentials are used for the auth admin API; the database URL
    is the SQLAlchemy connection string of the project's Postgres database.

    Attributes:
        url: Project URL (https://<ref>.supabase.co)
        service_role_key: Service-role key for admin calls
        database_url: SQLAlchemy URL for the project database
    """
    url: str = field(default_factory=lambda: get_env("SUPABASE_URL"))
    service_role_key: str = field(default_factory=lambda: get_env("SUPABASE_SERVICE_ROLE_KEY"))
    database_url: str = field(default_factory=lambda: get_env("DATABASE_URL"))

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.service_role_key)

    def validate(self) -> bool:
        """Validate that the auth admin API can be reached."""
        if not self.is_configured:
            raise ValueError("Missing Supabase configuration")
        return True

    @property
    def auth_url(self) -> str:
        """Base URL of the auth (GoTrue) API."""
        return f"{self.url.rstrip('/')}/auth/v1"


@dataclass
class ElevenLabsConfig:
    """
    ElevenLabs ConvAI configuration.

    Attributes:
        api_key: xi-api-key credential
        base_url: API base URL
        template_agent_id: Agent whose config seeds new role-play agents
        webhook_secret: Secret for post-call webhook signatures (optional)
    """
    api_key: str = field(default_factory=lambda: get_env("ELEVEN_LABS_API_KEY"))
    base_url: str = field(default_factory=lambda: get_env("ELEVEN_LABS_BASE_URL", "https://api.elevenlabs.io"))
    template_agent_id: str = field(default_factory=lambda: get_env("ELEVEN_LABS_TEMPLATE_AGENT_ID", "agent_9001k4r72ez9fmpvz7jwt6wr3jc9"))
    webhook_secret: str = field(default_factory=lambda: get_env("ELEVEN_LABS_WEBHOOK_SECRET"))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def validate(self) -> bool:
        if not self.api_key:
            raise ValueError("Missing ElevenLabs API key")
        return True


@dataclass
class OpenAIConfig:
    """
    OpenAI chat completion configuration.

    Attributes:
        api_key: OpenAI API key
        base_url: API base URL
        model: Chat model name
    """
    api_key: str = field(default_factory=lambda: get_env("OPENAI_API_KEY") or get_env("OPEN_AI_KEY"))
    base_url: str = field(default_factory=lambda: get_env("OPENAI_BASE_URL", "https://api.openai.com"))
    model: str = field(default_factory=lambda: get_env("OPENAI_MODEL", "gpt-4"))

    def validate(self) -> bool:
        if not self.api_key:
            raise ValueError("OpenAI API key not configured")
        return True

    @property
    def chat_url(self) -> str:
        """Get the full URL for chat completion API calls."""
        return f"{self.base_url.rstrip('/')}/v1/chat/completions"


@dataclass
class StripeConfig:
    """
    Stripe configuration.

    Attributes:
        secret_key: Secret API key
        webhook_secret: Signing secret of the webhook endpoint
        api_version: Pinned API version header
    """
    secret_key: str = field(default_factory=lambda: get_env("STRIPE_SECRET_KEY"))
    webhook_secret: str = field(default_factory=lambda: get_env("STRIPE_WEBHOOK_SECRET"))
    api_version: str = field(default_factory=lambda: get_env("STRIPE_API_VERSION", "2023-10-16"))

    def validate(self) -> bool:
        if not self.secret_key:
            raise ValueError("Missing Stripe secret key")
        return True


@dataclass
class EmailConfig:
    """
    Outbound SMTP configuration (Zoho mail in production).

    Attributes:
        smtp_host: SMTP server host
        smtp_port: SMTP server port
        smtp_username: Login user, also used as sender address
        smtp_password: Login password
        sender_name: Display name for the From header
        use_ssl: Use implicit TLS (SMTP_SSL) instead of STARTTLS
    """
    smtp_host: str = field(default_factory=lambda: get_env("ZOHO_HOST"))
    smtp_port: int = field(default_factory=lambda: get_env_int("ZOHO_PORT", 465))
    smtp_username: str = field(default_factory=lambda: get_env("ZOHO_EMAIL"))
    smtp_password: str = field(default_factory=lambda: get_env("ZOHO_PASSWORD"))
    sender_name: str = field(default_factory=lambda: get_env("EMAIL_SENDER_NAME", "RetailIQ"))
    use_ssl: bool = field(default_factory=lambda: get_env_bool("EMAIL_USE_SSL", True))

    @property
    def sender(self) -> str:
        return self.smtp_username

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)


@dataclass
class RealtimeConfig:
    """
    Realtime channel and local speech settings.

    Attributes:
        websocket_url: Message broker endpoint for the conversation UI
        tts_server_url: Local TTS server used by the /tts proxy
    """
    websocket_url: str = field(default_factory=lambda: get_env("WEBSOCKET_URL"))
    tts_server_url: str = field(default_factory=lambda: get_env("TTS_SERVER_URL", "http://localhost:5002/api/tts"))


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    This is the primary configuration interface for the application.
    Access via the singleton `settings` instance.

    Example:
        from retailiq.config import settings

        settings.elevenlabs.validate()
        url = settings.openai.chat_url
    """
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    elevenlabs: ElevenLabsConfig = field(default_factory=ElevenLabsConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Application-level settings
    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))
    http_timeout: float = field(default_factory=lambda: get_env_float("HTTP_TIMEOUT", 60.0))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"


# Singleton settings instance
# Import this in other modules: from retailiq.config import settings
settings = Settings()
