"""
SQLAlchemy implementation of the durable identity store.

Embeddings are stored as little-endian float32 bytes so values round-trip
exactly. Trust tiers are stored as their string tags and validated on load;
a malformed record fails the whole load instead of being dropped.

Example:
    ```python
    store = SqlAlchemyIdentityStore("sqlite+aiosqlite:///./facelink.db")
    await store.initialize()
    await store.save_identities(registry.get_known_faces())
    identities = await store.load_identities()
    ```
"""
from datetime import timezone
from typing import List, Optional, Sequence

import numpy as np
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from facelink.core.exceptions import IdentityStoreError
from facelink.core.logging import get_logger
from facelink.domain.entities.identity import KnownIdentity, TrustTier
from facelink.domain.interfaces.storage.identity_store import IdentityStore
from facelink.infrastructure.database.models import KnownFaceRecord
from facelink.infrastructure.database.session import (
    create_engine,
    create_session_factory,
    create_tables,
    get_db_session,
)
from facelink.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger(__name__)


def to_record(identity: KnownIdentity, position: int) -> KnownFaceRecord:
    values = np.asarray(identity.embedding, dtype="<f4")
    return KnownFaceRecord(
        id=identity.id,
        position=position,
        embedding=values.tobytes(),
        dimension=int(values.size),
        display_name=identity.display_name,
        trust_tier=identity.trust_tier.value,
        trust_score=identity.trust_score,
        external_ref=identity.external_ref,
        family_relation=identity.family_relation,
        created_at=identity.created_at,
    )


def to_identity(record: KnownFaceRecord) -> KnownIdentity:
    """Rebuild a KnownIdentity from its record.

    Raises:
        IdentityStoreError: If the record is malformed
    """
    if len(record.embedding) != record.dimension * 4:
        raise IdentityStoreError(
            "Stored embedding does not match its dimension",
            details={"id": record.id, "dimension": record.dimension, "bytes": len(record.embedding)},
        )

    created_at = record.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    try:
        return KnownIdentity(
            id=record.id,
            embedding=np.frombuffer(record.embedding, dtype="<f4"),
            display_name=record.display_name,
            trust_tier=TrustTier(record.trust_tier),
            trust_score=record.trust_score,
            external_ref=record.external_ref,
            family_relation=record.family_relation,
            created_at=created_at,
        )
    except (ValueError, ValidationError) as e:
        raise IdentityStoreError(
            f"Malformed identity record: {str(e)}",
            details={"id": record.id, "trust_tier": record.trust_tier},
        )


class SqlAlchemyIdentityStore(IdentityStore):
    """Identity store backed by an async SQLAlchemy engine (SQLite by default)."""

    def __init__(self, url: Optional[str] = None) -> None:
        self.engine = create_engine(url)
        self.session_factory = create_session_factory(self.engine)

    async def initialize(self) -> None:
        """Create the schema if needed.

        Raises:
            IdentityStoreError: If the database cannot be reached
        """
        try:
            await create_tables(self.engine)
        except SQLAlchemyError as e:
            logger.error("Failed to initialize identity store", error=str(e), exc_info=True)
            raise IdentityStoreError(f"Failed to initialize identity store: {str(e)}")

    async def load_identities(self) -> List[KnownIdentity]:
        try:
            async with get_db_session(self.session_factory) as session:
                records = await UnitOfWork(session).known_faces.list_all()
        except SQLAlchemyError as e:
            logger.error("Failed to read identities", error=str(e), exc_info=True)
            raise IdentityStoreError(f"Failed to read identities: {str(e)}")

        identities = [to_identity(record) for record in records]
        logger.debug("Loaded identities from store", count=len(identities))
        return identities

    async def save_identities(self, identities: Sequence[KnownIdentity]) -> None:
        records = [to_record(identity, position) for position, identity in enumerate(identities)]
        try:
            async with get_db_session(self.session_factory) as session:
                async with UnitOfWork(session) as uow:
                    await uow.known_faces.replace_all(records)
        except SQLAlchemyError as e:
            logger.error("Failed to write identities", error=str(e), exc_info=True)
            raise IdentityStoreError(f"Failed to write identities: {str(e)}")

        logger.debug("Saved identities to store", count=len(records))

    async def close(self) -> None:
        await self.engine.dispose()
