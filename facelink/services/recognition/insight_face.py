"""
InsightFace-based implementations of the embedding model and face detector.

Both adapters share one FaceAnalysis model pack per (name, root) so the
detection and recognition networks are loaded once per process.

Example:
    ```python
    model = InsightFaceEmbeddingModel()
    detector = InsightFaceDetector()
    ```

Note:
    This implementation uses CPU inference by default. For GPU support,
    modify the providers list to include 'CUDAExecutionProvider'.
"""
import threading
from functools import lru_cache
from typing import List, Optional, Tuple

import numpy as np
from insightface.app import FaceAnalysis

from facelink.core.config import settings
from facelink.core.exceptions import InvalidImageError, ModelLoadError, ProcessingError
from facelink.core.logging import get_logger
from facelink.core.utils.image import ensure_bgr
from facelink.domain.entities.face import BoundingBox
from facelink.domain.interfaces.recognition.embedding_model import EmbeddingModel
from facelink.domain.interfaces.recognition.face_detector import FaceDetector

logger = get_logger(__name__)


@lru_cache(maxsize=None)
def load_face_analysis(name: str, root: str, det_size: int) -> FaceAnalysis:
    """Load and prepare an InsightFace model pack.

    Raises:
        ModelLoadError: If the model files cannot be loaded
    """
    try:
        app = FaceAnalysis(
            name=name,
            root=root,
            allowed_modules=["detection", "recognition"],
            providers=["CPUExecutionProvider"],
        )
        app.prepare(ctx_id=0, det_size=(det_size, det_size))
    except Exception as e:
        logger.error("Failed to load InsightFace models", model=name, error=str(e), exc_info=True)
        raise ModelLoadError(f"Failed to load model pack {name}: {str(e)}")

    logger.info("Loaded InsightFace models", model=name, modules=list(app.models.keys()))
    return app


class InsightFaceEmbeddingModel(EmbeddingModel):
    """ArcFace recognition network from an InsightFace model pack.

    Inference is serialized with a lock because the ONNX session is shared.

    Attributes:
        session: onnxruntime session of the recognition network
    """

    def __init__(self, name: Optional[str] = None, root: Optional[str] = None) -> None:
        """
        Raises:
            ModelLoadError: If the pack has no usable recognition model
        """
        app = load_face_analysis(
            name or settings.MODEL_NAME,
            root or settings.MODEL_CACHE_DIR,
            settings.DETECTION_SIZE,
        )
        recognizer = app.models.get("recognition")
        if recognizer is None:
            raise ModelLoadError("Model pack has no recognition model")

        self.session = recognizer.session
        self.input_name = recognizer.input_name
        self.output_names = recognizer.output_names
        size = getattr(recognizer, "input_size", None)
        self._input_size: Tuple[int, int] = (
            tuple(size) if size else (settings.MODEL_INPUT_SIZE, settings.MODEL_INPUT_SIZE)
        )
        self._lock = threading.Lock()

    @property
    def input_size(self) -> Tuple[int, int]:
        return self._input_size

    def embed(self, face: np.ndarray) -> np.ndarray:
        """Run the network on one (H, W, 3) RGB face scaled to [-1, 1]."""
        blob = np.ascontiguousarray(face.transpose(2, 0, 1)[np.newaxis, ...], dtype=np.float32)
        try:
            with self._lock:
                outputs = self.session.run(self.output_names, {self.input_name: blob})
        except Exception as e:
            raise ProcessingError(f"Recognition model failed: {str(e)}")
        return np.asarray(outputs[0]).reshape(-1)


class InsightFaceDetector(FaceDetector):
    """SCRFD face detector from an InsightFace model pack."""

    def __init__(
        self,
        name: Optional[str] = None,
        root: Optional[str] = None,
        min_confidence: Optional[float] = None,
    ) -> None:
        app = load_face_analysis(
            name or settings.MODEL_NAME,
            root or settings.MODEL_CACHE_DIR,
            settings.DETECTION_SIZE,
        )
        self.det_model = app.det_model
        self.min_confidence = (
            min_confidence if min_confidence is not None else settings.MIN_FACE_CONFIDENCE
        )
        self._lock = threading.Lock()

    def detect_faces(self, image: np.ndarray) -> List[BoundingBox]:
        if image is None or image.size == 0:
            raise InvalidImageError("Empty image")

        try:
            with self._lock:
                bboxes, _ = self.det_model.detect(ensure_bgr(image), max_num=0, metric="default")
        except Exception as e:
            logger.error("Face detection failed", error=str(e), image_shape=image.shape, exc_info=True)
            raise InvalidImageError(f"Face detection failed: {str(e)}")

        boxes = []
        for x1, y1, x2, y2, score in np.asarray(bboxes).reshape(-1, 5):
            if score < self.min_confidence:
                continue
            boxes.append(BoundingBox(
                left=float(x1),
                top=float(y1),
                width=float(x2 - x1),
                height=float(y2 - y1),
                confidence=float(score),
            ))

        boxes.sort(key=lambda box: box.confidence or 0.0, reverse=True)
        logger.debug("Face detection results", faces_found=len(boxes), image_shape=image.shape)
        return boxes
