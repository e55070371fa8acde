"""Face region detector interface."""
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ...entities.face import BoundingBox


class FaceDetector(ABC):
    """Finds face regions in a photo."""

    @abstractmethod
    def detect_faces(self, image: np.ndarray) -> List[BoundingBox]:
        """
        Detect faces in a BGR image.

        Args:
            image: Photo as a BGR uint8 array

        Returns:
            Zero or more bounding boxes in image pixel coordinates,
            most confident first

        Raises:
            InvalidImageError: If the image cannot be processed
        """
        pass
