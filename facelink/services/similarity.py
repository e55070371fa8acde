"""
Calibrated similarity between face embeddings.

The score is an ensemble of eight distance and correlation metrics computed
on smoothed, feature-weighted copies of the two embeddings, followed by a
logistic sharpening step and a three-band reshaping:

    > 0.8       confident match, pushed toward 1.0
    0.3 - 0.8   ambiguous, unchanged
    < 0.3       confident non-match, compressed toward 0

Downstream thresholds (match confidence, grouping, peer binding) are
calibrated against this exact pipeline, so the weights and constants must
not drift independently of them.

Example:
    ```python
    scorer = SimilarityScorer()
    scorer.score(a, b)  # float in [0, 1]
    ```
"""
import math
from typing import Optional, Sequence

import numpy as np

from facelink.core.config import settings

SMOOTHING_RADIUS = 3
ENHANCED_DIMENSIONS = 128
ENHANCEMENT_FACTOR = 1.2
SIGMOID_CENTER = 0.5
HIGH_BAND = 0.8
LOW_BAND = 0.3


def l2_normalize(embedding: np.ndarray) -> Optional[np.ndarray]:
    """Scale to unit Euclidean norm; None for a zero-magnitude vector."""
    vector = np.asarray(embedding, dtype=np.float64).reshape(-1)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not math.isfinite(norm):
        return None
    return vector / norm


def smooth(embedding: np.ndarray, radius: int = SMOOTHING_RADIUS) -> np.ndarray:
    """Moving average over [i - radius, i + radius], clipped at the boundaries.

    The window shrinks near both ends, so every output is the mean of the
    elements actually inside it.
    """
    n = embedding.shape[0]
    if n == 0:
        return embedding.copy()
    cumsum = np.concatenate(([0.0], np.cumsum(embedding)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - radius)
    hi = np.minimum(n - 1, idx + radius) + 1
    return (cumsum[hi] - cumsum[lo]) / (hi - lo)


def preprocess(embedding: np.ndarray) -> np.ndarray:
    """Normalize, smooth and weight the leading dimensions of an embedding."""
    normalized = l2_normalize(embedding)
    if normalized is None:
        return np.zeros(np.asarray(embedding).reshape(-1).shape[0], dtype=np.float64)
    smoothed = smooth(normalized)
    smoothed[:min(ENHANCED_DIMENSIONS, smoothed.shape[0])] *= ENHANCEMENT_FACTOR
    return smoothed


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    norm_a = float(np.dot(a, a))
    norm_b = float(np.dot(b, b))
    if norm_a <= 0.0 or norm_b <= 0.0:
        return 0.0
    return float(np.dot(a, b)) / (math.sqrt(norm_a) * math.sqrt(norm_b))


def euclidean_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """1 - distance / sqrt(D)."""
    distance = float(np.linalg.norm(a - b))
    return 1.0 - distance / math.sqrt(a.shape[0])


def manhattan_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """1 - L1 / D."""
    return 1.0 - float(np.sum(np.abs(a - b))) / a.shape[0]


def pearson_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation rescaled from [-1, 1] to [0, 1]."""
    n = float(a.shape[0])
    sum_a = float(np.sum(a))
    sum_b = float(np.sum(b))
    numerator = float(np.dot(a, b)) - sum_a * sum_b / n
    var_a = float(np.dot(a, a)) - sum_a * sum_a / n
    var_b = float(np.dot(b, b)) - sum_b * sum_b / n
    product = var_a * var_b
    if product <= 0.0:
        return 0.0
    return (numerator / math.sqrt(product) + 1.0) / 2.0


def mahalanobis_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Squared difference normalized by the mean energy of both vectors."""
    diff = a - b
    sum_squared_diff = float(np.dot(diff, diff))
    sum_variance = float(np.sum((a * a + b * b) / 2.0))
    if sum_variance <= 0.0:
        return 0.0
    return 1.0 / (1.0 + math.sqrt(sum_squared_diff / sum_variance))


def jaccard_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """sum(min) / sum(max) over the non-negative parts of both vectors."""
    pos_a = np.maximum(a, 0.0)
    pos_b = np.maximum(b, 0.0)
    union = float(np.sum(np.maximum(pos_a, pos_b)))
    if union <= 0.0:
        return 0.0
    return float(np.sum(np.minimum(pos_a, pos_b))) / union


def chebyshev_similarity(a: np.ndarray, b: np.ndarray) -> float:
    return 1.0 / (1.0 + float(np.max(np.abs(a - b))))


def canberra_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Components where both values are zero contribute nothing."""
    denominator = np.abs(a) + np.abs(b)
    mask = denominator > 0.0
    total = float(np.sum(np.abs(a - b)[mask] / denominator[mask]))
    return 1.0 / (1.0 + total)


METRICS = (
    cosine_similarity,
    euclidean_similarity,
    manhattan_similarity,
    pearson_similarity,
    mahalanobis_similarity,
    jaccard_similarity,
    chebyshev_similarity,
    canberra_similarity,
)


def sharpen(x: float, steepness: float) -> float:
    """Logistic curve centred at 0.5."""
    return 1.0 / (1.0 + math.exp(-steepness * (x - SIGMOID_CENTER)))


def reshape_bands(similarity: float) -> float:
    if similarity > HIGH_BAND:
        return 0.9 + (similarity - HIGH_BAND) * 0.5
    if similarity < LOW_BAND:
        return similarity * 0.5
    return similarity


class SimilarityScorer:
    """Stateless scorer producing a calibrated similarity in [0, 1].

    Safe to share between threads.
    """

    def __init__(
        self,
        weights: Optional[Sequence[float]] = None,
        steepness: Optional[float] = None,
    ) -> None:
        """
        Args:
            weights: One weight per metric in `METRICS` order
            steepness: Logistic steepness of the sharpening step
        """
        self.weights = np.asarray(
            weights if weights is not None else settings.SIMILARITY_WEIGHTS,
            dtype=np.float64,
        )
        if self.weights.shape != (len(METRICS),):
            raise ValueError(f"Expected {len(METRICS)} weights, got {self.weights.shape[0]}")
        self.steepness = steepness if steepness is not None else settings.SIGMOID_STEEPNESS

    def components(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Per-metric similarities of two equally sized embeddings."""
        pa = preprocess(a)
        pb = preprocess(b)
        return np.array([metric(pa, pb) for metric in METRICS], dtype=np.float64)

    def score(self, a: np.ndarray, b: np.ndarray) -> float:
        """
        Calibrated similarity of two embeddings.

        Returns 0.0 when the embeddings differ in length or are empty; never raises
        for well-formed numeric input.
        """
        a = np.asarray(a).reshape(-1)
        b = np.asarray(b).reshape(-1)
        if a.shape[0] != b.shape[0] or a.shape[0] == 0:
            return 0.0

        weighted_sum = float(np.dot(self.components(a, b), self.weights))
        if not math.isfinite(weighted_sum):
            return 0.0
        return reshape_bands(sharpen(weighted_sum, self.steepness))
