"""
Metrics Models
===============

Daily SLA and notification rollups.
"""

from datetime import date, datetime

from sqlalchemy import String, Integer, Float, Date, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.infrastructure.database import Base
from casetrack.infrastructure.database.types import UTCDateTime, utc_now


class DailySLAMetricsModel(Base):
    """
    Per-state SLA compliance for the cases opened on one day.

    Maps to the 'daily_sla_metrics' table.
    """
    __tablename__ = "daily_sla_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    state_name: Mapped[str] = mapped_column(String(30), nullable=False)
    total_cases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    compliant_cases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    compliance_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("metric_date", "state_name", name="uq_daily_sla_metrics_day_state"),
    )


class DailyNotificationMetricsModel(Base):
    """
    Notification delivery outcome per template type for one day.

    Maps to the 'daily_notification_metrics' table.
    """
    __tablename__ = "daily_notification_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    template_type: Mapped[str] = mapped_column(String(30), nullable=False)
    notifications_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notifications_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notifications_pending: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("metric_date", "template_type", name="uq_daily_notification_metrics_day_type"),
    )
