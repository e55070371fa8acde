"""Photo storage collaborator interface."""
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ...value_objects.recognition import RecognizedFace


class PhotoSink(ABC):
    """Receives every processed photo together with its face labels."""

    @abstractmethod
    async def save_photo(
        self,
        image: np.ndarray,
        sender_name: Optional[str] = None,
        sender_avatar: Optional[bytes] = None,
        recognized_faces: Optional[List[RecognizedFace]] = None,
    ) -> None:
        """
        Store a processed photo.

        Args:
            image: Photo as a BGR array
            sender_name: Display name of the peer that sent the photo
            sender_avatar: Encoded avatar of that peer
            recognized_faces: Labels for the faces found; empty when none matched
        """
        pass
