"""Recognition interfaces package."""
from .embedding_model import EmbeddingModel
from .face_detector import FaceDetector

__all__ = ["EmbeddingModel", "FaceDetector"]
