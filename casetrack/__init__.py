"""
casetrack
=========

Case lifecycle and SLA escalation engine.
"""

__version__ = "1.0.0"
