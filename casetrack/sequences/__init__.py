"""
Sequences Module
=================

Globally unique, human-readable document numbers per document type and
fiscal year.
"""

from casetrack.sequences.domain import (
    DOCUMENT_TYPE_CODES,
    fiscal_year_code,
    resolve_type_code,
    format_document_number,
)
from casetrack.sequences.generator import SequenceGenerator

__all__ = [
    "DOCUMENT_TYPE_CODES",
    "fiscal_year_code",
    "resolve_type_code",
    "format_document_number",
    "SequenceGenerator",
]
