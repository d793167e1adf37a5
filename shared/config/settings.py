"""
Centralized configuration using Pydantic Settings
Loads from environment variables and .env file
"""

from typing import Optional
from urllib.parse import urlparse
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """
    Application settings
    All settings can be overridden by environment variables
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"
    )

    # =============================================
    # QUOTE STREAM ENDPOINT
    # =============================================
    quote_stream_url: str = Field(
        default="wss://127.0.0.1:8000/u/quotes/stream",
        description="Quote stream WebSocket endpoint"
    )
    quote_stream_open_timeout: float = Field(default=10.0, description="Handshake timeout (seconds)")
    quote_stream_ping_interval: Optional[float] = Field(default=20.0, description="Keepalive ping interval (seconds)")
    quote_stream_ping_timeout: Optional[float] = Field(default=20.0, description="Keepalive pong timeout (seconds)")
    quote_stream_close_timeout: float = Field(default=5.0, description="Closing handshake timeout (seconds)")
    quote_stream_verify_tls: bool = Field(default=True, description="Verify TLS certificates on wss endpoints")

    # Aliases para compatibilidad (mayúsculas)
    @property
    def QUOTE_STREAM_URL(self) -> str:
        return self.quote_stream_url

    # =============================================
    # CLIENT DEFAULTS
    # =============================================
    quote_stream_default_symbols: str = Field(
        default="AAPL,MSFT",
        description="Initial raw symbol input (comma/space separated)"
    )

    # =============================================
    # SERVICE
    # =============================================
    quote_stream_host: str = Field(default="0.0.0.0", description="Quote stream service host")
    quote_stream_port: int = Field(default=8010, description="Quote stream service port")

    # =============================================
    # LOGGING
    # =============================================
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    @field_validator("quote_stream_url")
    @classmethod
    def validate_stream_url(cls, v: str) -> str:
        """Only ws:// and wss:// endpoints can be dialed"""
        scheme = urlparse(v).scheme.lower()
        if scheme not in ("ws", "wss"):
            raise ValueError(f"quote_stream_url must use ws or wss, got '{scheme or v}'")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @property
    def quote_stream_is_secure(self) -> bool:
        """True when the endpoint negotiates TLS"""
        return urlparse(self.quote_stream_url).scheme.lower() == "wss"


# Global settings instance
settings = Settings()
