"""Tests for whole-photo recognition."""
import numpy as np
import pytest

from conftest import FakeEmbeddingModel, FakeFaceDetector, face_image
from facelink.core.exceptions import InvalidImageError
from facelink.domain.entities.face import BoundingBox
from facelink.domain.entities.identity import TrustTier
from facelink.domain.value_objects.recognition import RecognizedFace
from facelink.services.photo_recognition import PhotoRecognitionService
from facelink.services.recognition.embedding_extractor import EmbeddingExtractor


def two_face_photo():
    return np.hstack([face_image(), face_image()])


TWO_BOXES = [
    BoundingBox(left=5, top=5, width=90, height=110, confidence=0.99),
    BoundingBox(left=105, top=5, width=90, height=110, confidence=0.95),
]


def service_for(registry, sink, detector, *vectors):
    extractor = EmbeddingExtractor(FakeEmbeddingModel(*vectors))
    return PhotoRecognitionService(detector, extractor, registry, sink)


class TestProcessPhoto:
    """Test suite for PhotoRecognitionService.process_photo."""

    async def test_recognizes_known_face(self, registry, photo_sink, whole_face_box, alice):
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        service = service_for(registry, photo_sink, FakeFaceDetector([whole_face_box]), alice)

        labels = await service.process_photo(face_image(), sender_name="Bob")

        assert [(label.name, label.trust_tier) for label in labels] == [("Alice", TrustTier.SELF_PROFILE)]
        assert photo_sink.saved[0]["sender_name"] == "Bob"
        assert photo_sink.saved[0]["recognized_faces"] == labels

    async def test_unmatched_photo_stored_with_empty_list(self, registry, photo_sink, whole_face_box, alice, bob):
        """A photo without a matching face should still be stored, with no labels."""
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        service = service_for(registry, photo_sink, FakeFaceDetector([whole_face_box]), bob)

        labels = await service.process_photo(face_image())

        assert labels == []
        assert len(photo_sink.saved) == 1
        assert photo_sink.saved[0]["recognized_faces"] == []

    async def test_photo_without_faces_stored(self, registry, photo_sink):
        service = service_for(registry, photo_sink, FakeFaceDetector([]))
        await service.process_photo(face_image())
        assert photo_sink.saved[0]["recognized_faces"] == []

    async def test_low_quality_face_skipped(self, registry, photo_sink, whole_face_box, alice):
        """A face failing the quality gate should not fail the photo."""
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        service = service_for(registry, photo_sink, FakeFaceDetector([whole_face_box]), alice)

        await service.process_photo(np.zeros((120, 100, 3), dtype=np.uint8))

        assert photo_sink.saved[0]["recognized_faces"] == []

    async def test_multiple_faces(self, registry, photo_sink, alice, bob):
        registry.add_face(alice, "Alice", TrustTier.SELF_PROFILE)
        registry.add_face(bob, "Bob", TrustTier.CONTACT, family_relation=True)
        service = service_for(registry, photo_sink, FakeFaceDetector(TWO_BOXES), alice, bob)

        labels = await service.process_photo(two_face_photo())

        assert [label.name for label in labels] == ["Alice", "Bob"]

    async def test_explicit_peer_labels_registered(self, registry, photo_sink, alice, bob):
        """Peer-tier labels sent with a photo should be stored and registered as Peer identities."""
        service = service_for(registry, photo_sink, FakeFaceDetector(TWO_BOXES), alice, bob)
        supplied = [
            RecognizedFace(name="Carol", confidence=0.8, trust_tier=TrustTier.PEER),
            RecognizedFace(name="Dan", confidence=0.6, trust_tier=TrustTier.PEER),
        ]

        labels = await service.process_photo(two_face_photo(), sender_name="Carol", recognized_faces=supplied)

        assert labels == supplied
        assert photo_sink.saved[0]["recognized_faces"] == supplied
        peers = registry.get_known_faces(tiers=[TrustTier.PEER])
        assert [known.display_name for known in peers] == ["Carol", "Dan"]
        assert all(known.trust_score == 0.5 for known in peers)
        np.testing.assert_allclose(peers[1].embedding, bob, atol=1e-6)

    async def test_non_peer_labels_not_registered(self, registry, photo_sink, whole_face_box, alice):
        service = service_for(registry, photo_sink, FakeFaceDetector([whole_face_box]), alice)
        supplied = [RecognizedFace(name="Alice", confidence=0.9, trust_tier=TrustTier.CONTACT)]

        await service.process_photo(face_image(), recognized_faces=supplied)

        assert len(registry) == 0


class TestExtractFaces:
    """Test suite for face extraction from photos."""

    def test_captures_carry_source(self, registry, photo_sink, alice):
        service = service_for(registry, photo_sink, FakeFaceDetector(TWO_BOXES), alice)
        photo = two_face_photo()

        captures = service.extract_faces(photo, photo_id="p1")

        assert len(captures) == 2
        assert all(capture.photo_id == "p1" for capture in captures)
        assert captures[0].full_image is photo

    def test_empty_photo(self, registry, photo_sink):
        service = service_for(registry, photo_sink, FakeFaceDetector([]))
        with pytest.raises(InvalidImageError):
            service.extract_faces(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_box_outside_image_skipped(self, registry, photo_sink, alice):
        outside = BoundingBox(left=500, top=500, width=20, height=20)
        service = service_for(registry, photo_sink, FakeFaceDetector([outside]), alice)
        assert service.extract_faces(face_image()) == []
