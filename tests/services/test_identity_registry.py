"""Tests for the identity registry."""
import threading

import numpy as np
import pytest

from facelink.core.exceptions import IdentityStoreError
from facelink.domain.entities.identity import TrustTier
from facelink.domain.value_objects.recognition import RegistryEventKind
from facelink.services.identity_registry import IdentityRegistry


class TestAddFace:
    """Test suite for registering identities."""

    def test_trust_scores_per_tier(self, registry, alice):
        """Trust scores should follow the tier and family relation."""
        ids = {
            "own": registry.add_face(alice, "Me", TrustTier.SELF_PROFILE),
            "family": registry.add_face(alice, "Mum", TrustTier.CONTACT, "c-1", family_relation=True),
            "contact": registry.add_face(alice, "Sam", TrustTier.CONTACT, "c-2"),
            "peer": registry.add_face(alice, "Pat", TrustTier.PEER),
        }
        assert registry.get(ids["own"]).trust_score == 1.0
        assert registry.get(ids["family"]).trust_score == 0.9
        assert registry.get(ids["contact"]).trust_score == 0.7
        assert registry.get(ids["peer"]).trust_score == 0.5
        assert registry.get(ids["family"]).external_ref == "c-1"

    def test_self_profile_replaced_on_update(self, registry, alice, bob):
        """A second SelfProfile face with the same name should replace the first."""
        first = registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        second = registry.add_face(bob, "Alice", TrustTier.SELF_PROFILE)

        own = [
            known for known in registry.get_known_faces()
            if known.trust_tier is TrustTier.SELF_PROFILE and known.display_name == "Alice"
        ]
        assert [known.id for known in own] == [second]
        assert registry.get(first) is None
        np.testing.assert_array_equal(own[0].embedding, bob)

    def test_other_tiers_accumulate(self, registry, alice):
        registry.add_face(alice, "Alice", TrustTier.CONTACT)
        registry.add_face(alice, "Alice", TrustTier.CONTACT)
        registry.add_face(alice, "Alice", TrustTier.PEER)
        assert len(registry) == 3

    def test_different_self_profile_names_kept(self, registry, alice):
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        registry.add_face(alice, "Ally", TrustTier.SELF_PROFILE)
        assert len(registry) == 2

    def test_empty_embedding_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.add_face(np.array([], dtype=np.float32), "Nobody", TrustTier.PEER)

    def test_embeddings_immutable(self, registry, alice):
        """Stored embeddings should not change when the caller's array does."""
        source = alice.copy()
        identity_id = registry.add_face(source, "Alice", TrustTier.CONTACT)
        source[:] = 0.0
        stored = registry.get(identity_id).embedding
        np.testing.assert_array_equal(stored, alice)
        with pytest.raises(ValueError):
            stored[0] = 1.0

    def test_concurrent_adds(self, registry, alice):
        """Adds from several threads should all be kept."""
        def add_many():
            for _ in range(50):
                registry.add_face(alice, None, TrustTier.PEER)

        threads = [threading.Thread(target=add_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(registry) == 200


class TestQueries:
    """Test suite for snapshots and matching."""

    def test_snapshot_is_detached(self, registry, alice):
        registry.add_face(alice, "Alice", TrustTier.CONTACT)
        snapshot = registry.get_known_faces()
        registry.clear()
        assert len(snapshot) == 1
        assert registry.get_known_faces() == []

    def test_find_match(self, registry, alice, bob):
        registry.add_face(bob, "Bob", TrustTier.CONTACT)
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        match = registry.find_match(alice)
        assert match.display_name == "Alice"

    def test_find_match_restricted_to_tiers(self, registry, alice):
        registry.add_face(alice, "Me", TrustTier.SELF_PROFILE)
        registry.add_face(alice, "Contact", TrustTier.CONTACT)
        match = registry.find_match(alice, tiers=[TrustTier.CONTACT])
        assert match.display_name == "Contact"

    def test_remove_and_prune(self, registry, alice):
        keep = registry.add_face(alice, "Keep", TrustTier.CONTACT)
        drop = registry.add_face(alice, "Drop", TrustTier.PEER)
        other = registry.add_face(alice, "Other", TrustTier.PEER)

        assert registry.remove_face(drop) is True
        assert registry.remove_face(drop) is False
        assert registry.prune(lambda known: known.trust_tier is TrustTier.PEER) == [other]
        assert [known.id for known in registry.get_known_faces()] == [keep]


class TestEvents:
    """Test suite for change notifications."""

    def test_events_emitted(self, registry, alice):
        events = []
        registry.subscribe(events.append)

        first = registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        second = registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        registry.clear()

        assert [event.kind for event in events] == [
            RegistryEventKind.ADDED,
            RegistryEventKind.REMOVED,
            RegistryEventKind.ADDED,
            RegistryEventKind.CLEARED,
        ]
        assert events[1].identity_ids == [first]
        assert events[3].identity_ids == [second]

    def test_unsubscribe(self, registry, alice):
        events = []
        unsubscribe = registry.subscribe(events.append)
        unsubscribe()
        registry.add_face(alice, "Alice", TrustTier.PEER)
        assert events == []

    def test_failing_listener_does_not_block_mutation(self, registry, alice):
        def broken(event):
            raise RuntimeError("listener bug")

        registry.subscribe(broken)
        registry.add_face(alice, "Alice", TrustTier.PEER)
        assert len(registry) == 1


class TestPersistence:
    """Test suite for persist and load."""

    async def test_persist_and_load(self, resolver, identity_store, alice, bob):
        registry = IdentityRegistry(resolver, identity_store)
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        registry.add_face(bob, "Bob", TrustTier.CONTACT, "c-1", family_relation=True)
        await registry.persist()

        restored = IdentityRegistry(resolver, identity_store)
        events = []
        restored.subscribe(events.append)
        assert await restored.load() == 2
        original = registry.get_known_faces()
        loaded = restored.get_known_faces()
        assert [known.id for known in loaded] == [known.id for known in original]
        for before, after in zip(original, loaded):
            np.testing.assert_array_equal(before.embedding, after.embedding)
        assert events[0].kind is RegistryEventKind.LOADED

    async def test_persist_failure_keeps_memory(self, registry, identity_store, alice):
        """A failed write should surface as IdentityStoreError and leave the registry usable."""
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        identity_store.fail_writes = True

        with pytest.raises(IdentityStoreError):
            await registry.persist()

        assert len(registry) == 1
        assert registry.find_match(alice) is not None

    async def test_load_failure_keeps_memory(self, registry, identity_store, alice):
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        identity_store.fail_reads = True

        with pytest.raises(IdentityStoreError):
            await registry.load()

        assert len(registry) == 1

    async def test_no_store(self, resolver):
        registry = IdentityRegistry(resolver)
        with pytest.raises(IdentityStoreError):
            await registry.persist()
        with pytest.raises(IdentityStoreError):
            await registry.load()
