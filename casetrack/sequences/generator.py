"""
Sequence Generator
===================

Issues unique, monotonic document numbers per (document type, fiscal year)
under concurrent access.

Every increment is one atomic statement:

    INSERT ... ON CONFLICT (document_type, fiscal_year)
    DO UPDATE SET last_sequence = last_sequence + 1
    RETURNING last_sequence

so two callers can never observe the same value, even across processes.
"""

import asyncio
from collections import defaultdict
from datetime import date
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casetrack.config import settings
from casetrack.core import ConfigurationException
from casetrack.infrastructure.database import get_session_maker
from casetrack.sequences.domain import (
    fiscal_year_code,
    resolve_type_code,
    format_document_number,
)
from casetrack.sequences.models import DocumentSequenceModel
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SequenceGenerator:
    """
    Document number issuer.

    With a caller session the increment joins the caller's transaction, so
    a number issued for a document that is rolled back is rolled back too.
    Without one, the increment commits in its own short transaction and is
    serialised per key in-process.
    """

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        prefix: Optional[str] = None,
        clock: Optional[Clock] = None
    ):
        self._session_maker = session_maker
        self._prefix = prefix or settings.document_prefix
        self._clock = clock or SystemClock()
        self._locks: dict[tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def prefix(self) -> str:
        return self._prefix

    async def next_sequence(
        self,
        type_code: str,
        fiscal_year: str,
        session: Optional[AsyncSession] = None
    ) -> int:
        """
        Increment and return the counter for a key. First call returns 1.

        Args:
            type_code: Short document type code (e.g. "EQ")
            fiscal_year: Fiscal year code (e.g. "2526")
            session: Optional caller session to run inside
        """
        if session is not None:
            return await self._increment(session, type_code, fiscal_year)

        async with self._locks[(type_code, fiscal_year)]:
            session_maker = self._session_maker or get_session_maker()
            async with session_maker() as own_session:
                async with own_session.begin():
                    return await self._increment(own_session, type_code, fiscal_year)

    async def next_document_number(
        self,
        document_type: str,
        session: Optional[AsyncSession] = None,
        on: Optional[date] = None
    ) -> str:
        """
        Issue the next formatted number, e.g. ``VESPL/EQ/2526/001``.

        Raises:
            ValidationException: If the document type is unknown
        """
        canonical, type_code = resolve_type_code(document_type)
        fiscal_year = fiscal_year_code(on or self._clock.now().date())
        sequence = await self.next_sequence(type_code, fiscal_year, session=session)
        number = format_document_number(self._prefix, type_code, fiscal_year, sequence)

        logger.info(
            "Document number issued",
            extra={
                "document_type": canonical,
                "fiscal_year": fiscal_year,
                "sequence": sequence,
                "document_number": number
            }
        )
        return number

    async def _increment(self, session: AsyncSession, type_code: str, fiscal_year: str) -> int:
        dialect = session.get_bind().dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            raise ConfigurationException(
                f"Sequence generation is not supported on dialect '{dialect}'",
                {"dialect": dialect}
            )

        now = self._clock.now()
        table = DocumentSequenceModel.__table__
        stmt = insert(table).values(
            document_type=type_code,
            fiscal_year=fiscal_year,
            last_sequence=1,
            updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.document_type, table.c.fiscal_year],
            set_={
                "last_sequence": table.c.last_sequence + 1,
                "updated_at": now,
            }
        ).returning(table.c.last_sequence)

        result = await session.execute(stmt)
        return result.scalar_one()
