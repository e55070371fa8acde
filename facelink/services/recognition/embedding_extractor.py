"""
Embedding extraction from face crops.

Pipeline:
    1. Quality gate: reject crops whose composite quality is below
       QUALITY_THRESHOLD (InvalidImageError). Inference never runs for them.
    2. Preprocess: letterbox to the model's input size, BGR -> RGB,
       scale pixel values into [-1, 1].
    3. Inference through the injected EmbeddingModel.
    4. L2-normalize. A zero-norm output is a ProcessingError.

Retries (another crop, a centre-crop fallback) belong to the caller.

Example:
    ```python
    extractor = EmbeddingExtractor(model)
    embedding = extractor.extract(face_crop)
    ```
"""
from typing import Optional

import cv2
import numpy as np

from facelink.core.config import settings
from facelink.core.exceptions import InvalidImageError, ProcessingError
from facelink.core.logging import get_logger
from facelink.core.utils.image import ensure_bgr, letterbox
from facelink.domain.interfaces.recognition.embedding_model import EmbeddingModel
from facelink.domain.value_objects.recognition import ImageQualityMetrics
from facelink.services.recognition.quality import compute_quality_metrics
from facelink.services.similarity import l2_normalize

logger = get_logger(__name__)


class EmbeddingExtractor:
    """Turns face crops into L2-normalized float32 embeddings."""

    def __init__(self, model: EmbeddingModel, quality_threshold: Optional[float] = None) -> None:
        """
        Args:
            model: Embedding network adapter
            quality_threshold: Minimum composite quality (defaults to settings)
        """
        self.model = model
        self.quality_threshold = (
            quality_threshold if quality_threshold is not None else settings.QUALITY_THRESHOLD
        )

    def check_quality(self, image: np.ndarray) -> ImageQualityMetrics:
        """Compute quality metrics and enforce the gate.

        Raises:
            InvalidImageError: If the crop is empty or below the quality threshold
        """
        if image is None or image.size == 0:
            raise InvalidImageError("Empty face image")

        metrics = compute_quality_metrics(image)
        if metrics.quality < self.quality_threshold:
            logger.debug(
                "Face image rejected by quality gate",
                quality=metrics.quality,
                brightness=metrics.brightness,
                contrast=metrics.contrast,
            )
            raise InvalidImageError(
                "Face image quality too low",
                details=metrics.model_dump(),
            )
        if metrics.is_blurred:
            logger.debug("Face image looks blurred", quality=metrics.quality)
        return metrics

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        """Letterbox to the model input size and scale RGB values into [-1, 1]."""
        boxed = letterbox(ensure_bgr(image), self.model.input_size)
        rgb = cv2.cvtColor(boxed, cv2.COLOR_BGR2RGB).astype(np.float32)
        return (rgb / 255.0 - 0.5) * 2.0

    def extract(self, image: np.ndarray) -> np.ndarray:
        """
        Extract the embedding of a face crop.

        Args:
            image: Face crop as a BGR uint8 array (already cropped by the detector)

        Returns:
            Unit-norm float32 embedding of the model's dimensionality

        Raises:
            InvalidImageError: If the crop fails the quality gate
            ProcessingError: If preprocessing or inference fails, or inference yields a zero vector
        """
        self.check_quality(image)
        try:
            tensor = self.preprocess(image)
        except (cv2.error, ValueError) as e:
            raise ProcessingError(f"Face image preprocessing failed: {str(e)}", details={"shape": list(image.shape)})

        try:
            raw = np.asarray(self.model.embed(tensor), dtype=np.float64).reshape(-1)
        except ProcessingError:
            raise
        except Exception as e:
            logger.error("Embedding inference failed", error=str(e), exc_info=True)
            raise ProcessingError(f"Embedding inference failed: {str(e)}")

        normalized = l2_normalize(raw)
        if normalized is None:
            raise ProcessingError("Model returned a zero-magnitude embedding")

        return normalized.astype(np.float32)
