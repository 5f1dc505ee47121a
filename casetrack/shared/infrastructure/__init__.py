"""
Shared Infrastructure
======================

Cross-cutting infrastructure used by every bounded context:
- Structured logging
- Clock abstraction
- Grafana OTLP metrics exporter
"""

from casetrack.shared.infrastructure.logging import (
    setup_logging,
    get_logger,
    log_latency,
)
from casetrack.shared.infrastructure.clock import Clock, SystemClock, FrozenClock

__all__ = [
    "setup_logging",
    "get_logger",
    "log_latency",
    "Clock",
    "SystemClock",
    "FrozenClock",
]
