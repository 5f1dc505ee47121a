"""
Document Number Rules
======================

Pure functions for fiscal years and document number formatting.

Numbers look like ``VESPL/EQ/2526/001``: company prefix, document type
code, fiscal year code, and a per (type, fiscal year) sequence.
"""

from datetime import date, datetime
from typing import Union

from casetrack.config import DocumentType
from casetrack.core import ValidationException


DOCUMENT_TYPE_CODES = {
    DocumentType.CASE: "C",
    DocumentType.ENQUIRY: "EQ",
    DocumentType.ESTIMATION: "ES",
    DocumentType.QUOTATION: "QT",
    DocumentType.SALES_ORDER: "SO",
    DocumentType.PURCHASE_ORDER: "PO",
    DocumentType.WORK_ORDER: "WO",
    DocumentType.INVOICE: "IN",
    DocumentType.DELIVERY_CHALLAN: "DC",
}

# Fiscal year runs April to March
FISCAL_YEAR_START_MONTH = 4


def fiscal_year_code(on: Union[date, datetime]) -> str:
    """
    Four-digit fiscal year code.

    Example:
        2025-04-01 .. 2026-03-31 -> "2526"
        2026-01-15 -> "2526"
    """
    start_year = on.year if on.month >= FISCAL_YEAR_START_MONTH else on.year - 1
    return f"{start_year % 100:02d}{(start_year + 1) % 100:02d}"


def resolve_type_code(document_type: str) -> tuple[str, str]:
    """
    Map a document type name to its (canonical name, short code).

    Accepts any letter case, so reference tags such as ``enquiry`` resolve
    to ``ENQUIRY``.

    Raises:
        ValidationException: If the document type is unknown
    """
    canonical = (document_type or "").strip().upper()
    code = DOCUMENT_TYPE_CODES.get(canonical)
    if code is None:
        raise ValidationException(
            f"Unknown document type: {document_type}",
            {"document_type": document_type, "allowed": sorted(DOCUMENT_TYPE_CODES)}
        )
    return canonical, code


def format_document_number(prefix: str, type_code: str, fiscal_year: str, sequence: int) -> str:
    """Zero-padded to three digits; larger sequences keep every digit."""
    return f"{prefix}/{type_code}/{fiscal_year}/{sequence:03d}"
