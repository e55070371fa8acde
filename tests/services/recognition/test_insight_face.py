"""Tests for the InsightFace model and detector adapters."""
from types import SimpleNamespace

import numpy as np
import pytest

from conftest import face_image
from facelink.core.exceptions import InvalidImageError, ModelLoadError
from facelink.services.recognition import insight_face
from facelink.services.recognition.embedding_extractor import EmbeddingExtractor
from facelink.services.recognition.insight_face import (
    InsightFaceDetector,
    InsightFaceEmbeddingModel,
    load_face_analysis,
)


class FakeSession:
    def __init__(self):
        self.feeds = []

    def run(self, output_names, feed):
        self.feeds.append(feed)
        return [np.arange(1, 513, dtype=np.float32).reshape(1, 512)]


class FakeDetModel:
    def __init__(self, bboxes):
        self.bboxes = np.asarray(bboxes, dtype=np.float32)

    def detect(self, img, max_num=0, metric="default"):
        return self.bboxes, None


@pytest.fixture
def fake_pack(monkeypatch):
    """Replace the model pack loader with an in-memory pack."""
    recognizer = SimpleNamespace(
        session=FakeSession(),
        input_name="data",
        output_names=["fc1"],
        input_size=(112, 112),
    )
    det_model = FakeDetModel([
        [10, 10, 50, 60, 0.65],
        [0, 0, 5, 5, 0.2],
        [60, 20, 90, 70, 0.98],
    ])
    pack = SimpleNamespace(models={"recognition": recognizer, "detection": det_model}, det_model=det_model)
    monkeypatch.setattr(insight_face, "load_face_analysis", lambda name, root, det_size: pack)
    return pack


class TestInsightFaceEmbeddingModel:
    """Test suite for the recognition adapter."""

    def test_input_size_from_model(self, fake_pack):
        assert InsightFaceEmbeddingModel().input_size == (112, 112)

    def test_embed_feeds_nchw(self, fake_pack):
        """The network should receive one NCHW float32 blob."""
        model = InsightFaceEmbeddingModel()
        output = model.embed(np.zeros((112, 112, 3), dtype=np.float32))

        blob = fake_pack.models["recognition"].session.feeds[0]["data"]
        assert blob.shape == (1, 3, 112, 112)
        assert blob.dtype == np.float32
        assert output.shape == (512,)

    def test_extractor_integration(self, fake_pack):
        extractor = EmbeddingExtractor(InsightFaceEmbeddingModel())
        embedding = extractor.extract(face_image())
        assert embedding.shape == (512,)
        assert np.linalg.norm(embedding) == pytest.approx(1.0, abs=1e-6)

    def test_missing_recognition_model(self, monkeypatch):
        pack = SimpleNamespace(models={}, det_model=None)
        monkeypatch.setattr(insight_face, "load_face_analysis", lambda name, root, det_size: pack)
        with pytest.raises(ModelLoadError):
            InsightFaceEmbeddingModel()


class TestInsightFaceDetector:
    """Test suite for the detection adapter."""

    def test_filters_and_sorts(self, fake_pack):
        """Low-score detections should be dropped and the rest sorted by confidence."""
        boxes = InsightFaceDetector(min_confidence=0.5).detect_faces(face_image())
        assert [box.confidence for box in boxes] == pytest.approx([0.98, 0.65])
        assert boxes[0].left == 60
        assert boxes[0].width == 30
        assert boxes[0].height == 50

    def test_empty_image(self, fake_pack):
        with pytest.raises(InvalidImageError):
            InsightFaceDetector().detect_faces(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_detector_failure(self, fake_pack):
        def broken(*args, **kwargs):
            raise RuntimeError("bad input")

        fake_pack.det_model.detect = broken
        with pytest.raises(InvalidImageError):
            InsightFaceDetector().detect_faces(face_image())


class TestModelLoading:
    """Test suite for model pack loading."""

    def test_load_failure_raises_model_load_error(self, monkeypatch):
        """A failing model pack should raise ModelLoadError instead of crashing."""
        def failing(*args, **kwargs):
            raise FileNotFoundError("model files missing")

        monkeypatch.setattr(insight_face, "FaceAnalysis", failing)
        load_face_analysis.cache_clear()
        with pytest.raises(ModelLoadError):
            load_face_analysis("missing_pack", "/nonexistent", 640)
