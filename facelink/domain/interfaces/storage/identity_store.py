"""Durable identity store interface."""
from abc import ABC, abstractmethod
from typing import List, Sequence

from ...entities.identity import KnownIdentity


class IdentityStore(ABC):
    """Persists the registry's known identities."""

    @abstractmethod
    async def load_identities(self) -> List[KnownIdentity]:
        """
        Load every stored identity in insertion order.

        Raises:
            IdentityStoreError: If the store cannot be read or holds malformed records
        """
        pass

    @abstractmethod
    async def save_identities(self, identities: Sequence[KnownIdentity]) -> None:
        """
        Replace the stored identities with `identities`.

        Embedding values must round-trip exactly.

        Raises:
            IdentityStoreError: If the store cannot be written
        """
        pass
