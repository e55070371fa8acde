"""Embedding model interface."""
from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np


class EmbeddingModel(ABC):
    """Pretrained network mapping a preprocessed face to a raw embedding."""

    @property
    @abstractmethod
    def input_size(self) -> Tuple[int, int]:
        """Fixed (width, height) the network expects."""
        pass

    @abstractmethod
    def embed(self, face: np.ndarray) -> np.ndarray:
        """
        Run inference on one preprocessed face.

        Args:
            face: float32 array of shape (height, width, 3), RGB, values in [-1, 1]

        Returns:
            Raw (unnormalized) 1-D embedding

        Raises:
            ProcessingError: If inference fails
        """
        pass
