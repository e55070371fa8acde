"""Address book interface."""
from abc import ABC, abstractmethod
from typing import List, Optional

from ..entities.people import Contact


class ContactsProvider(ABC):
    """Read access to the device address book."""

    @abstractmethod
    async def fetch_contacts_with_images(self) -> List[Contact]:
        """Every contact that has a photo."""
        pass

    @abstractmethod
    async def fetch_contact(self, identifier: str) -> Optional[Contact]:
        """A single contact, or None if it no longer exists."""
        pass
