"""
Case Interfaces Layer
=====================

FastAPI routes for the case lifecycle.
"""

from casetrack.cases.interfaces.controllers import cases_router

__all__ = ["cases_router"]
