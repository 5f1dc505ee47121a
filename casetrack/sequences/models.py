"""
Sequence Models
================

SQLAlchemy ORM model for document sequence counters.
"""

from datetime import datetime

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.infrastructure.database import Base
from casetrack.infrastructure.database.types import UTCDateTime, utc_now


class DocumentSequenceModel(Base):
    """
    One counter per (document type code, fiscal year).

    Maps to the 'document_sequences' table.
    """
    __tablename__ = "document_sequences"

    document_type: Mapped[str] = mapped_column(String(10), primary_key=True)
    fiscal_year: Mapped[str] = mapped_column(String(4), primary_key=True)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
