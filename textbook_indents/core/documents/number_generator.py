from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.documents.models import DocumentSequence


class DocumentNumberGenerator:
    """
    Generates sequential document numbers in format: PREFIX-YYYY-NNNNNN

    Examples:
        TBI-2026-000001
        TBI-2026-000042
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate(self, prefix: str, year: int | None = None) -> str:
        """
        Generate next document number for given prefix and year.

        Uses SELECT FOR UPDATE so concurrent callers serialize on the sequence row.
        """
        if year is None:
            year = datetime.now().year

        stmt = (
            select(DocumentSequence)
            .where(DocumentSequence.prefix == prefix, DocumentSequence.year == year)
            .with_for_update()
        )
        sequence = (await self.session.execute(stmt)).scalar_one_or_none()

        if sequence is None:
            sequence = DocumentSequence(prefix=prefix, year=year, last_number=0)
            self.session.add(sequence)
            await self.session.flush()
            sequence = (await self.session.execute(stmt)).scalar_one()

        sequence.last_number += 1
        await self.session.flush()

        return format_document_number(prefix, year, sequence.last_number)


def format_document_number(prefix: str, year: int, number: int) -> str:
    return f"{prefix}-{year}-{number:06d}"


async def get_document_number(session: AsyncSession, prefix: str, year: int | None = None) -> str:
    """Convenience function to generate a document number."""
    return await DocumentNumberGenerator(session).generate(prefix, year)
