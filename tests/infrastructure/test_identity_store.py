"""Tests for the SQLAlchemy identity store."""
from datetime import datetime, timezone

import numpy as np
import pytest

from conftest import block_embedding
from facelink.core.exceptions import IdentityStoreError
from facelink.domain.entities.identity import KnownIdentity, TrustTier
from facelink.infrastructure.database.identity_store import SqlAlchemyIdentityStore
from facelink.infrastructure.database.models import KnownFaceRecord
from facelink.infrastructure.database.session import get_db_session
from facelink.services.identity_registry import IdentityRegistry


@pytest.fixture
async def store(tmp_path):
    store = SqlAlchemyIdentityStore(f"sqlite+aiosqlite:///{tmp_path / 'faces.db'}")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def identities():
    rng = np.random.default_rng(3)
    return [
        KnownIdentity(
            embedding=rng.standard_normal(512),
            display_name="Me",
            trust_tier=TrustTier.SELF_PROFILE,
            trust_score=1.0,
            created_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        ),
        KnownIdentity(
            embedding=rng.standard_normal(512),
            display_name="Mum",
            trust_tier=TrustTier.CONTACT,
            trust_score=0.9,
            external_ref="c-1",
            family_relation=True,
        ),
        KnownIdentity(
            embedding=block_embedding(0, 64),
            display_name=None,
            trust_tier=TrustTier.PEER,
            trust_score=0.5,
        ),
    ]


def assert_same(loaded, original):
    assert loaded.id == original.id
    assert loaded.display_name == original.display_name
    assert loaded.trust_tier is original.trust_tier
    assert loaded.trust_score == original.trust_score
    assert loaded.external_ref == original.external_ref
    assert loaded.family_relation == original.family_relation
    assert loaded.created_at == original.created_at
    np.testing.assert_array_equal(loaded.embedding, original.embedding)


async def insert(store, **overrides):
    values = dict(
        id="broken",
        position=0,
        embedding=np.zeros(4, dtype="<f4").tobytes(),
        dimension=4,
        display_name="X",
        trust_tier="peer",
        trust_score=0.5,
        external_ref=None,
        family_relation=False,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    async with get_db_session(store.session_factory) as session:
        session.add(KnownFaceRecord(**values))
        await session.commit()


class TestSqlAlchemyIdentityStore:
    """Test suite for SqlAlchemyIdentityStore."""

    async def test_round_trip(self, store, identities):
        """Every field should survive a save and load, in order."""
        await store.save_identities(identities)
        loaded = await store.load_identities()

        assert len(loaded) == 3
        for after, before in zip(loaded, identities):
            assert_same(after, before)

    async def test_empty_store(self, store):
        assert await store.load_identities() == []

    async def test_save_replaces_contents(self, store, identities):
        await store.save_identities(identities)
        await store.save_identities(identities[1:2])
        loaded = await store.load_identities()
        assert [identity.id for identity in loaded] == [identities[1].id]

    async def test_unknown_tier_fails_load(self, store):
        await insert(store, trust_tier="stranger")
        with pytest.raises(IdentityStoreError) as exc_info:
            await store.load_identities()
        assert exc_info.value.details["trust_tier"] == "stranger"

    async def test_truncated_embedding_fails_load(self, store):
        await insert(store, dimension=8)
        with pytest.raises(IdentityStoreError):
            await store.load_identities()

    async def test_registry_restart(self, store, resolver, alice, bob):
        """A registry persisted to disk should come back identical after a restart."""
        registry = IdentityRegistry(resolver, store)
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        registry.add_face(bob, "Bob", TrustTier.CONTACT, "c-2")
        await registry.persist()

        restarted = IdentityRegistry(resolver, store)
        assert await restarted.load() == 2
        for after, before in zip(restarted.get_known_faces(), registry.get_known_faces()):
            assert_same(after, before)
        assert restarted.find_match(alice).display_name == "Alice"
