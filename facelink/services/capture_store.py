"""In-memory store of face groups found by the library scan."""
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np

from facelink.domain.entities.face import FaceCapture
from facelink.domain.value_objects.recognition import FaceCluster
from facelink.services.similarity import SimilarityScorer


class FaceCaptureStore:
    """Holds the latest "my faces" groups for auto-sharing with peers."""

    def __init__(self) -> None:
        self._clusters: List[FaceCluster] = []
        self._lock = threading.Lock()

    def replace(self, clusters: Sequence[FaceCluster]) -> None:
        with self._lock:
            self._clusters = list(clusters)

    def clusters(self) -> List[FaceCluster]:
        with self._lock:
            return list(self._clusters)

    def captures(self) -> List[FaceCapture]:
        return [face for cluster in self.clusters() for face in cluster.faces]

    def clear(self) -> None:
        with self._lock:
            self._clusters = []

    def best_capture(
        self,
        embedding: np.ndarray,
        scorer: SimilarityScorer,
    ) -> Optional[Tuple[FaceCapture, float]]:
        """Most similar stored capture and its similarity; first one wins ties."""
        best: Optional[FaceCapture] = None
        best_similarity = 0.0
        for capture in self.captures():
            similarity = scorer.score(capture.embedding, embedding)
            if similarity > best_similarity:
                best = capture
                best_similarity = similarity

        if best is None:
            return None
        return best, best_similarity
