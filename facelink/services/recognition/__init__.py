"""Face recognition services package."""
from .embedding_extractor import EmbeddingExtractor
from .quality import compute_quality_metrics

__all__ = ["EmbeddingExtractor", "compute_quality_metrics"]
