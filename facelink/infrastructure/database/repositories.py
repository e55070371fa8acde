"""Database repositories for the identity store."""
from typing import List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from facelink.infrastructure.database.models import KnownFaceRecord


class KnownFaceRepository:
    """Repository for known face records."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository.

        Args:
            session: Database session
        """
        self._session = session

    async def list_all(self) -> List[KnownFaceRecord]:
        """All records in registry order."""
        stmt = select(KnownFaceRecord).order_by(KnownFaceRecord.position)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def delete_all(self) -> int:
        """Delete every record.

        Returns:
            int: Number of records deleted
        """
        result = await self._session.execute(delete(KnownFaceRecord))
        return result.rowcount or 0

    async def replace_all(self, records: Sequence[KnownFaceRecord]) -> None:
        """Replace the stored records with `records`."""
        await self.delete_all()
        self._session.add_all(list(records))
        await self._session.flush()
