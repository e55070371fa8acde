"""Resolve an unlabelled face to the best known identity."""
from typing import Iterable, Optional

import numpy as np

from facelink.core.config import settings
from facelink.core.logging import get_logger
from facelink.domain.entities.identity import KnownIdentity
from facelink.domain.value_objects.recognition import MatchResult
from facelink.services.similarity import SimilarityScorer

logger = get_logger(__name__)


class MatchResolver:
    """Trust-weighted nearest identity search.

    Every identity with a non-empty embedding is scored; confidence is the raw
    similarity times the identity's trust score. The first identity reaching
    the highest confidence wins, so ties go to the earliest registered one.
    A single global threshold applies to all tiers: trust weighting already
    discounts low-trust identities.
    """

    def __init__(self, scorer: SimilarityScorer, threshold: Optional[float] = None) -> None:
        self.scorer = scorer
        self.threshold = threshold if threshold is not None else settings.MATCH_CONFIDENCE_THRESHOLD

    def resolve(
        self,
        embedding: np.ndarray,
        identities: Iterable[KnownIdentity],
    ) -> Optional[MatchResult]:
        """
        Find the best match for `embedding` in a registry snapshot.

        Args:
            embedding: Query embedding
            identities: Snapshot of known identities, in registry order

        Returns:
            MatchResult if the best confidence exceeds the threshold, otherwise None
        """
        best: Optional[KnownIdentity] = None
        best_confidence = 0.0

        for identity in identities:
            if identity.embedding.size == 0:
                continue

            similarity = self.scorer.score(identity.embedding, embedding)
            confidence = similarity * identity.trust_score
            if confidence > best_confidence:
                best = identity
                best_confidence = confidence

        if best is None or best_confidence <= self.threshold:
            logger.debug("No identity above threshold", best_confidence=best_confidence)
            return None

        logger.debug(
            "Resolved face",
            display_name=best.display_name,
            trust_tier=best.trust_tier.value,
            confidence=best_confidence,
        )
        return MatchResult(
            display_name=best.display_name,
            confidence=min(1.0, best_confidence),
            trust_tier=best.trust_tier,
            identity_id=best.id,
        )
