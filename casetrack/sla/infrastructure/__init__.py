"""
SLA Infrastructure Layer
=========================

YAML configuration source with hot reload, and the loader that
synchronises templates and escalation rules into the database.
"""

from casetrack.sla.infrastructure.external import ConfigFileHandler, SLAConfigManager
from casetrack.sla.infrastructure.reference_data import ReferenceDataLoader

__all__ = [
    "ConfigFileHandler",
    "SLAConfigManager",
    "ReferenceDataLoader",
]
