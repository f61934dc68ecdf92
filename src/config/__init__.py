"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="fixit-intake", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    public_url: Optional[str] = Field(
        default=None,
        description="Externally reachable base URL, used for webhook signatures and provisioning"
    )

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/maintenance",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Twilio ==========
    twilio_account_sid: Optional[str] = Field(default=None, description="Twilio account SID")
    twilio_auth_token: Optional[str] = Field(default=None, description="Twilio auth token")
    twilio_messaging_service_sid: Optional[str] = Field(
        default=None,
        description="Messaging service SID; takes precedence over any from number"
    )
    twilio_from_e164: Optional[str] = Field(default=None, description="Fallback sender number")
    twilio_phone_number: Optional[str] = Field(default=None, description="Legacy fallback sender number")
    twilio_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for Twilio media downloads",
        ge=0.1,
        le=60
    )

    # ========== Inbound Webhook ==========
    webhook_max_skew_seconds: int = Field(
        default=300,
        description="Maximum accepted age of a signed webhook request",
        ge=1
    )
    webhook_rate_limit: int = Field(
        default=20,
        description="Inbound messages allowed per sender per window",
        ge=1
    )
    webhook_rate_window_seconds: int = Field(
        default=300,
        description="Rate limit window for inbound messages",
        ge=1
    )

    # ========== LLM Settings ==========
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    vision_model: str = Field(default="gpt-4o-mini", description="Model used for photo triage")
    mock_llm: bool = Field(
        default=False,
        description="Use mock LLM responses for testing (no API calls)"
    )
    triage_max_images: int = Field(
        default=4,
        description="Maximum photos sent to the vision model per ticket",
        ge=1,
        le=10
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str, Enum):
    """Maintenance ticket categories."""
    PLUMBING = "PLUMBING"
    ELECTRICAL = "ELECTRICAL"
    HVAC = "HVAC"
    APPLIANCE = "APPLIANCE"
    PEST_CONTROL = "PEST_CONTROL"
    SECURITY = "SECURITY"
    COSMETIC = "COSMETIC"
    OTHER = "OTHER"
    UNKNOWN = "UNKNOWN"


class TicketPriority(str, Enum):
    """Ticket priority levels."""
    EMERGENCY = "EMERGENCY"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ConversationState(str, Enum):
    """SMS conversation states."""
    IDLE = "IDLE"
    ASK_PROPERTY = "ASK_PROPERTY"


class Role(str, Enum):
    """Organisation membership roles."""
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    TENANT = "TENANT"


class AccessRequestStatus(str, Enum):
    """Access request lifecycle."""
    OPEN = "OPEN"
    INVITED = "INVITED"
    DISMISSED = "DISMISSED"


class NumberType(str, Enum):
    """Purchasable number types."""
    LOCAL = "LOCAL"
    TOLLFREE = "TOLLFREE"


# ========== Lists for validation ==========

VALID_CATEGORIES = [c.value for c in TicketCategory]
VALID_PRIORITIES = [p.value for p in TicketPriority]
VALID_STATUSES = [s.value for s in TicketStatus]
OPEN_STATUSES = [TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value]
STAFF_ROLES = (Role.OWNER, Role.MANAGER, Role.STAFF)
ADMIN_ROLES = (Role.OWNER, Role.MANAGER)
INVITABLE_ROLES = [Role.MANAGER.value, Role.STAFF.value]

UNASSIGNED_PROPERTY_NAME = "__UNASSIGNED_INBOX__"
UNASSIGNED_PROPERTY_ADDRESS = "SMS Intake"
WEBHOOK_PATH = "/api/webhooks/twilio"
MEDIA_PROXY_PATH = "/api/twilio/media"
