"""Group faces from one scan batch by similarity."""
from typing import List, Optional, Sequence

from facelink.core.config import settings
from facelink.core.logging import get_logger
from facelink.domain.entities.face import FaceCapture
from facelink.domain.value_objects.recognition import FaceCluster
from facelink.services.similarity import SimilarityScorer

logger = get_logger(__name__)


class GroupingEngine:
    """Greedy seed-based threshold clustering.

    Each unassigned face seeds a group and pulls in every later unassigned
    face whose similarity to the seed reaches the threshold. Singletons are
    dropped. The pass compares every pair once, so it is O(n^2) and meant for
    batches of at most a few hundred faces. Results depend on input order,
    which callers keep stable (most recent photo first).
    """

    def __init__(self, scorer: SimilarityScorer) -> None:
        self.scorer = scorer

    def cluster(
        self,
        faces: Sequence[FaceCapture],
        threshold: Optional[float] = None,
    ) -> List[FaceCluster]:
        """
        Cluster a batch of faces.

        Args:
            faces: Face captures in a stable order
            threshold: Minimum similarity to the group seed (defaults to settings)

        Returns:
            Groups of two or more faces, in seed order
        """
        threshold = threshold if threshold is not None else settings.GROUPING_THRESHOLD
        processed = [False] * len(faces)
        clusters: List[FaceCluster] = []

        for i, seed in enumerate(faces):
            if processed[i]:
                continue
            processed[i] = True
            members = [seed]

            for j in range(i + 1, len(faces)):
                if processed[j]:
                    continue
                if self.scorer.score(seed.embedding, faces[j].embedding) >= threshold:
                    members.append(faces[j])
                    processed[j] = True

            if len(members) > 1:
                clusters.append(FaceCluster(faces=members))

        logger.info(
            "Clustered faces",
            faces=len(faces),
            groups=len(clusters),
            grouped=sum(len(cluster) for cluster in clusters),
            threshold=threshold,
        )
        return clusters
