"""
Image processing utility functions.
"""
import hashlib
from typing import Tuple

import cv2
import numpy as np

from facelink.domain.entities.face import BoundingBox


def bytes_to_numpy_array(image_bytes: bytes, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """Convert image bytes to a numpy array.

    Args:
        image_bytes: Raw image bytes
        flags: OpenCV imread flags (default: COLOR)

    Returns:
        numpy.ndarray: Image as a numpy array

    Raises:
        ValueError: If the image cannot be decoded
    """
    np_array = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(np_array, flags)

    if img is None:
        raise ValueError("Failed to decode image bytes")

    return img


def numpy_array_to_bytes(image: np.ndarray, ext: str = ".jpg") -> bytes:
    """Encode a BGR image for transport or storage.

    Raises:
        ValueError: If the image cannot be encoded
    """
    ok, buffer = cv2.imencode(ext, image)
    if not ok:
        raise ValueError(f"Failed to encode image as {ext}")
    return buffer.tobytes()


def image_digest(image: np.ndarray) -> str:
    """Content hash used to recognise an image that was already received."""
    contiguous = np.ascontiguousarray(image)
    digest = hashlib.sha256(contiguous.tobytes())
    digest.update(str(contiguous.shape).encode())
    return digest.hexdigest()


def crop_with_padding(image: np.ndarray, box: BoundingBox, padding: float = 0.0) -> np.ndarray:
    """Crop a face region, growing it by `padding` of the box size on every side.

    The padded rectangle is clamped to the image bounds.

    Raises:
        ValueError: If the clamped region is empty
    """
    height, width = image.shape[:2]
    pad_x = box.width * padding
    pad_y = box.height * padding

    left = int(round(max(0.0, box.left - pad_x)))
    top = int(round(max(0.0, box.top - pad_y)))
    right = int(round(min(float(width), box.left + box.width + pad_x)))
    bottom = int(round(min(float(height), box.top + box.height + pad_y)))

    if right <= left or bottom <= top:
        raise ValueError("Face region lies outside the image")

    return image[top:bottom, left:right].copy()


def center_crop(image: np.ndarray, ratio: float) -> np.ndarray:
    """Take the central `ratio` of the image in both dimensions."""
    height, width = image.shape[:2]
    crop_w = max(1, int(width * ratio))
    crop_h = max(1, int(height * ratio))
    left = (width - crop_w) // 2
    top = (height - crop_h) // 2
    return image[top:top + crop_h, left:left + crop_w].copy()


def letterbox(image: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Resize keeping aspect ratio and pad the remainder with black.

    Args:
        image: BGR image
        size: Target (width, height)

    Returns:
        Image of exactly `size`
    """
    target_w, target_h = size
    height, width = image.shape[:2]
    scale = min(target_w / width, target_h / height)
    new_w = max(1, int(round(width * scale)))
    new_h = max(1, int(round(height * scale)))

    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(image, (new_w, new_h), interpolation=interpolation)

    canvas = np.zeros((target_h, target_w, 3), dtype=image.dtype)
    offset_x = (target_w - new_w) // 2
    offset_y = (target_h - new_h) // 2
    canvas[offset_y:offset_y + new_h, offset_x:offset_x + new_w] = resized
    return canvas


def ensure_bgr(image: np.ndarray) -> np.ndarray:
    """Return a 3-channel uint8 BGR view of a grayscale, BGR or BGRA image."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[..., 0], cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image
