"""
Metrics Module
===============

Daily SLA compliance and notification delivery rollups.
"""

from casetrack.metrics.services import MetricsService, SQLAlchemyMetricsRepository, day_bounds

__all__ = ["MetricsService", "SQLAlchemyMetricsRepository", "day_bounds"]
