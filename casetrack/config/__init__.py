"""
Configuration Module
====================

Application settings and domain constants.

Settings are loaded from environment variables (and an optional .env file)
using Pydantic. SLA rules themselves live in the YAML file pointed to by
``sla_config_path`` and are handled by the SLA module.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="casetrack", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/casetrack",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )

    # ========== Scheduler ==========
    scheduler_enabled: bool = Field(default=True, description="Arm periodic tasks on startup")
    sla_sweep_interval_minutes: int = Field(
        default=15,
        description="Minutes between SLA sweeps",
        ge=1
    )
    notification_drain_interval_minutes: int = Field(
        default=2,
        description="Minutes between notification queue drains",
        ge=1
    )
    metrics_rollup_interval_hours: int = Field(
        default=24,
        description="Hours between daily metrics rollups",
        ge=1
    )
    retention_cleanup_interval_days: int = Field(
        default=7,
        description="Days between retention cleanups",
        ge=1
    )

    # ========== Notification Queue ==========
    delivery_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for a single delivery attempt",
        gt=0
    )
    notification_max_retries: int = Field(default=3, description="Delivery attempts per row", ge=1)
    notification_batch_size: int = Field(default=50, description="Rows per drain pass", ge=1)
    notification_retention_days: int = Field(
        default=30,
        description="Days to keep sent/failed notifications",
        ge=1
    )
    escalation_retention_days: int = Field(
        default=90,
        description="Days to keep resolved escalations",
        ge=1
    )

    # ========== Document Numbers ==========
    document_prefix: str = Field(
        default="VESPL",
        min_length=1,
        description="Company prefix used in document numbers"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#case-alerts",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    case_url_template: str = Field(
        default="http://localhost:3000/cases/{case_number}",
        description="Link to a case in the web client"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
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
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class CaseState(str):
    """Ordered lifecycle states of a case."""
    ENQUIRY = "enquiry"
    ESTIMATION = "estimation"
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"
    MANUFACTURING = "manufacturing"
    DELIVERY = "delivery"
    CLOSED = "closed"


class CaseStatus(str):
    """Case record status (independent of the lifecycle state)."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str):
    """Case priority levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReferenceType(str):
    """Owner kinds a status history entry can be attached to."""
    CASE = "case"
    ENQUIRY = "enquiry"
    ESTIMATION = "estimation"
    QUOTATION = "quotation"
    SALES_ORDER = "sales_order"
    PURCHASE_ORDER = "purchase_order"
    WORK_ORDER = "work_order"


class DocumentType(str):
    """Document kinds that receive a sequence number."""
    CASE = "CASE"
    ENQUIRY = "ENQUIRY"
    ESTIMATION = "ESTIMATION"
    QUOTATION = "QUOTATION"
    SALES_ORDER = "SALES_ORDER"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    WORK_ORDER = "WORK_ORDER"
    INVOICE = "INVOICE"
    DELIVERY_CHALLAN = "DELIVERY_CHALLAN"


class NotificationStatus(str):
    """Queue row delivery status."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class RecipientType(str):
    """Recipient descriptor kinds (exactly one per notification)."""
    USER = "user"
    ROLE = "role"
    LOCATION = "location"


class TemplateType(str):
    """Notification template categories."""
    SLA_WARNING = "sla_warning"
    SLA_BREACH = "sla_breach"
    ESCALATION = "escalation"
    GENERAL = "general"


class TriggerEvent(str):
    """Events that put a notification on the queue."""
    SLA_WARNING = "sla_warning"
    HIGH_PRIORITY_SLA_WARNING = "high_priority_sla_warning"
    SLA_BREACH = "sla_breach"
    SLA_BREACH_MANAGEMENT = "sla_breach_management"
    CRITICAL_SLA_BREACH = "critical_sla_breach"
    AUTOMATIC_ESCALATION = "automatic_escalation"
    MANUAL_ESCALATION = "manual_escalation"


class Role(str):
    """Roles that receive SLA notifications."""
    MANAGER = "manager"
    DIRECTOR = "director"


class TemplateName(str):
    """Names of the templates the engine looks up."""
    SLA_WARNING = "SLA Warning - 2 Hours"
    SLA_BREACH = "SLA Breach Alert"
    ESCALATION = "Escalation Notice"


# ========== Lists for validation ==========

CASE_STATE_ORDER = [
    CaseState.ENQUIRY, CaseState.ESTIMATION, CaseState.QUOTATION,
    CaseState.SALES_ORDER, CaseState.MANUFACTURING, CaseState.DELIVERY,
    CaseState.CLOSED
]
VALID_CASE_STATUSES = [CaseStatus.ACTIVE, CaseStatus.COMPLETED, CaseStatus.CANCELLED]
VALID_PRIORITIES = [Priority.HIGH, Priority.MEDIUM, Priority.LOW]
VALID_REFERENCE_TYPES = [
    ReferenceType.CASE, ReferenceType.ENQUIRY, ReferenceType.ESTIMATION,
    ReferenceType.QUOTATION, ReferenceType.SALES_ORDER,
    ReferenceType.PURCHASE_ORDER, ReferenceType.WORK_ORDER
]
VALID_DOCUMENT_TYPES = [
    DocumentType.CASE, DocumentType.ENQUIRY, DocumentType.ESTIMATION,
    DocumentType.QUOTATION, DocumentType.SALES_ORDER,
    DocumentType.PURCHASE_ORDER, DocumentType.WORK_ORDER,
    DocumentType.INVOICE, DocumentType.DELIVERY_CHALLAN
]
VALID_NOTIFICATION_STATUSES = [
    NotificationStatus.PENDING, NotificationStatus.SENT, NotificationStatus.FAILED
]
VALID_RECIPIENT_TYPES = [RecipientType.USER, RecipientType.ROLE, RecipientType.LOCATION]
VALID_TEMPLATE_TYPES = [
    TemplateType.SLA_WARNING, TemplateType.SLA_BREACH,
    TemplateType.ESCALATION, TemplateType.GENERAL
]
