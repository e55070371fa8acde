"""Image quality gate applied to face crops before embedding extraction."""
import cv2
import numpy as np

from facelink.core.config import settings
from facelink.core.utils.image import ensure_bgr
from facelink.domain.value_objects.recognition import ImageQualityMetrics


def _luma(image: np.ndarray) -> np.ndarray:
    """Rec. 601 luma in [0, 1] of a BGR image."""
    bgr = ensure_bgr(image).astype(np.float32) / 255.0
    b, g, r = bgr[..., 0], bgr[..., 1], bgr[..., 2]
    return 0.299 * r + 0.587 * g + 0.114 * b


def _penalty(value: float, low: float, mid: float) -> float:
    if value < low:
        return 0.7
    if value < mid:
        return 0.85
    return 1.0


def compute_quality_metrics(image: np.ndarray) -> ImageQualityMetrics:
    """
    Measure brightness, contrast and blur of a face crop.

    The composite quality starts at 1.0 and is multiplied by 0.7 (or 0.85)
    for low (or mediocre) brightness and again for low (or mediocre) contrast.
    Blur is reported but does not affect the composite score.

    Args:
        image: Face crop as a BGR (or grayscale) uint8 array

    Returns:
        ImageQualityMetrics for the crop
    """
    if image is None or image.size == 0:
        return ImageQualityMetrics(brightness=0.0, contrast=0.0, is_blurred=True, quality=0.0)

    luma = _luma(image)
    brightness = float(np.clip(luma.mean(), 0.0, 1.0))
    contrast = float(np.clip(luma.max() - luma.min(), 0.0, 1.0))

    gray = (luma * 255.0).astype(np.float64)
    blur_variance = float(cv2.Laplacian(gray, cv2.CV_64F).var())
    is_blurred = blur_variance < settings.BLUR_VARIANCE_THRESHOLD

    quality = 1.0
    quality *= _penalty(brightness, settings.LOW_BRIGHTNESS, settings.MID_BRIGHTNESS)
    quality *= _penalty(contrast, settings.LOW_CONTRAST, settings.MID_CONTRAST)

    return ImageQualityMetrics(
        brightness=brightness,
        contrast=contrast,
        is_blurred=is_blurred,
        quality=quality,
    )
