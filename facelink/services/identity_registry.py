"""
Registry of known identities.

The registry is the only owner and writer of the known-identity collection.
Mutations and snapshots are serialized with a re-entrant lock so scans,
labelling and peer callbacks running on different threads can all add
identities. Persistence is explicit: `persist()` writes a snapshot to the
durable store, `load()` replaces the in-memory collection with its content.

Example:
    ```python
    registry = IdentityRegistry(resolver, store)
    await registry.load()
    registry.add_face(embedding, "Alice", TrustTier.SELF_PROFILE)
    match = registry.find_match(query)
    await registry.persist()
    ```
"""
import asyncio
import threading
from typing import Callable, Iterable, List, Optional

import numpy as np

from facelink.core.config import settings
from facelink.core.exceptions import IdentityStoreError
from facelink.core.logging import get_logger
from facelink.domain.entities.identity import KnownIdentity, TrustTier, trust_score_for
from facelink.domain.interfaces.storage.identity_store import IdentityStore
from facelink.domain.value_objects.recognition import MatchResult, RegistryEvent, RegistryEventKind
from facelink.services.match_resolver import MatchResolver

logger = get_logger(__name__)

RegistryListener = Callable[[RegistryEvent], None]


class IdentityRegistry:
    """In-memory collection of known identities with explicit persistence."""

    def __init__(self, resolver: MatchResolver, store: Optional[IdentityStore] = None) -> None:
        """
        Args:
            resolver: Resolver used by `find_match`
            store: Durable store used by `persist` and `load`
        """
        self.resolver = resolver
        self.store = store
        self._identities: List[KnownIdentity] = []
        self._lock = threading.RLock()
        self._persist_lock = asyncio.Lock()
        self._listeners: List[RegistryListener] = []

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: RegistryEventKind, identity_ids: Iterable[str]) -> None:
        event = RegistryEvent(kind=kind, identity_ids=list(identity_ids))
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error("Registry listener failed", kind=kind.value, error=str(e), exc_info=True)

    def add_face(
        self,
        embedding: np.ndarray,
        display_name: Optional[str] = None,
        trust_tier: TrustTier = TrustTier.PEER,
        external_ref: Optional[str] = None,
        family_relation: bool = False,
    ) -> str:
        """
        Register a new identity.

        A SelfProfile identity replaces any existing SelfProfile identity with
        the same display name.

        Args:
            embedding: Reference embedding
            display_name: Optional label
            trust_tier: Source tier
            external_ref: Optional address-book reference
            family_relation: Contact shares the user's family name

        Returns:
            Identifier of the new identity

        Raises:
            ValueError: If the embedding is empty
        """
        if np.asarray(embedding).size == 0:
            raise ValueError("Cannot register an identity with an empty embedding")

        identity = KnownIdentity(
            embedding=embedding,
            display_name=display_name,
            trust_tier=trust_tier,
            trust_score=trust_score_for(
                trust_tier,
                family_relation,
                self_profile=settings.TRUST_SELF_PROFILE,
                contact_family=settings.TRUST_CONTACT_FAMILY,
                contact=settings.TRUST_CONTACT,
                peer=settings.TRUST_PEER,
            ),
            external_ref=external_ref,
            family_relation=family_relation,
        )

        removed: List[str] = []
        with self._lock:
            if trust_tier is TrustTier.SELF_PROFILE:
                removed = [
                    known.id for known in self._identities
                    if known.trust_tier is TrustTier.SELF_PROFILE and known.display_name == display_name
                ]
                self._identities = [known for known in self._identities if known.id not in removed]
            self._identities.append(identity)
            total = len(self._identities)

        logger.info(
            "Registered known face",
            identity_id=identity.id,
            display_name=display_name,
            trust_tier=trust_tier.value,
            replaced=len(removed),
            total=total,
        )
        if removed:
            self._emit(RegistryEventKind.REMOVED, removed)
        self._emit(RegistryEventKind.ADDED, [identity.id])
        return identity.id

    def remove_face(self, identity_id: str) -> bool:
        """Remove one identity; returns False if it was not registered."""
        with self._lock:
            before = len(self._identities)
            self._identities = [known for known in self._identities if known.id != identity_id]
            removed = len(self._identities) != before

        if removed:
            self._emit(RegistryEventKind.REMOVED, [identity_id])
        return removed

    def prune(self, predicate: Callable[[KnownIdentity], bool]) -> List[str]:
        """Remove every identity matching `predicate`; returns removed ids."""
        with self._lock:
            removed = [known.id for known in self._identities if predicate(known)]
            self._identities = [known for known in self._identities if known.id not in removed]

        if removed:
            self._emit(RegistryEventKind.REMOVED, removed)
        return removed

    def get_known_faces(self, tiers: Optional[Iterable[TrustTier]] = None) -> List[KnownIdentity]:
        """Snapshot of the registered identities in insertion order."""
        with self._lock:
            snapshot = list(self._identities)
        if tiers is None:
            return snapshot
        allowed = set(tiers)
        return [known for known in snapshot if known.trust_tier in allowed]

    def get(self, identity_id: str) -> Optional[KnownIdentity]:
        with self._lock:
            return next((known for known in self._identities if known.id == identity_id), None)

    def find_match(
        self,
        embedding: np.ndarray,
        tiers: Optional[Iterable[TrustTier]] = None,
    ) -> Optional[MatchResult]:
        """Resolve `embedding` against a snapshot, optionally restricted to some tiers."""
        return self.resolver.resolve(embedding, self.get_known_faces(tiers))

    def clear(self) -> None:
        """Remove every identity."""
        with self._lock:
            removed = [known.id for known in self._identities]
            self._identities = []

        logger.info("Cleared known faces", removed=len(removed))
        self._emit(RegistryEventKind.CLEARED, removed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)

    async def persist(self) -> None:
        """
        Write the current identities to the durable store.

        Raises:
            IdentityStoreError: If no store is configured or the write fails;
                the in-memory registry is unaffected either way
        """
        if self.store is None:
            raise IdentityStoreError("No identity store configured")

        async with self._persist_lock:
            snapshot = self.get_known_faces()
            try:
                await self.store.save_identities(snapshot)
            except IdentityStoreError:
                logger.error("Failed to persist known faces", count=len(snapshot))
                raise
            except Exception as e:
                logger.error("Failed to persist known faces", error=str(e), exc_info=True)
                raise IdentityStoreError(f"Failed to persist known faces: {str(e)}")

        logger.info("Persisted known faces", count=len(snapshot))

    async def load(self) -> int:
        """
        Replace the in-memory identities with the stored ones.

        Returns:
            Number of identities loaded

        Raises:
            IdentityStoreError: If no store is configured or the read fails;
                the in-memory registry is left unchanged
        """
        if self.store is None:
            raise IdentityStoreError("No identity store configured")

        async with self._persist_lock:
            try:
                identities = await self.store.load_identities()
            except IdentityStoreError:
                raise
            except Exception as e:
                logger.error("Failed to load known faces", error=str(e), exc_info=True)
                raise IdentityStoreError(f"Failed to load known faces: {str(e)}")

            with self._lock:
                self._identities = list(identities)

        logger.info("Loaded known faces", count=len(identities))
        self._emit(RegistryEventKind.LOADED, [known.id for known in identities])
        return len(identities)
