"""Shared fixtures: in-test fakes of the external collaborators and embedding helpers."""
from typing import Callable, Dict, List, Optional, Sequence

import cv2
import numpy as np
import pytest

from facelink.core.exceptions import IdentityStoreError, PeerChannelError
from facelink.domain.entities.face import BoundingBox
from facelink.domain.entities.identity import KnownIdentity
from facelink.domain.entities.people import Contact
from facelink.domain.interfaces.contacts import ContactsProvider
from facelink.domain.interfaces.peer.channel import PeerChannel, PeerChannelHandler
from facelink.domain.interfaces.recognition.embedding_model import EmbeddingModel
from facelink.domain.interfaces.recognition.face_detector import FaceDetector
from facelink.domain.interfaces.storage.identity_store import IdentityStore
from facelink.domain.interfaces.storage.photo_sink import PhotoSink
from facelink.domain.value_objects.recognition import RecognizedFace
from facelink.services.identity_registry import IdentityRegistry
from facelink.services.match_resolver import MatchResolver
from facelink.services.recognition.embedding_extractor import EmbeddingExtractor
from facelink.services.similarity import SimilarityScorer

DIM = 128


def block_embedding(start: int, stop: int, dim: int = DIM) -> np.ndarray:
    """Unit vector spread evenly over dimensions [start, stop)."""
    vector = np.zeros(dim, dtype=np.float32)
    vector[start:stop] = 1.0 / np.sqrt(stop - start)
    return vector


def face_image(height: int = 120, width: int = 100) -> np.ndarray:
    """Bright, high-contrast BGR image that passes the quality gate."""
    gradient = np.linspace(60, 255, width, dtype=np.float32)
    gray = np.tile(gradient, (height, 1)).astype(np.uint8)
    return np.stack([gray, gray, gray], axis=-1)


def encoded_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


class FakeEmbeddingModel(EmbeddingModel):
    """Returns queued vectors in order, repeating the last one."""

    def __init__(self, *vectors: np.ndarray, fail: Optional[Exception] = None) -> None:
        self.vectors = list(vectors) or [block_embedding(0, 64)]
        self.fail = fail
        self.calls: List[np.ndarray] = []

    @property
    def input_size(self):
        return (160, 160)

    def embed(self, face: np.ndarray) -> np.ndarray:
        self.calls.append(face)
        if self.fail is not None:
            raise self.fail
        index = min(len(self.calls), len(self.vectors)) - 1
        return np.asarray(self.vectors[index], dtype=np.float32) * 3.0


class FakeFaceDetector(FaceDetector):
    """Returns fixed boxes, or the result of `per_image` when given."""

    def __init__(
        self,
        boxes: Optional[Sequence[BoundingBox]] = None,
        per_image: Optional[Callable[[np.ndarray], List[BoundingBox]]] = None,
    ) -> None:
        self.boxes = list(boxes or [])
        self.per_image = per_image
        self.calls = 0

    def detect_faces(self, image: np.ndarray) -> List[BoundingBox]:
        self.calls += 1
        if self.per_image is not None:
            return self.per_image(image)
        return list(self.boxes)


class RecordingPhotoSink(PhotoSink):
    def __init__(self) -> None:
        self.saved: List[Dict] = []

    async def save_photo(
        self,
        image: np.ndarray,
        sender_name: Optional[str] = None,
        sender_avatar: Optional[bytes] = None,
        recognized_faces: Optional[List[RecognizedFace]] = None,
    ) -> None:
        self.saved.append({
            "image": image,
            "sender_name": sender_name,
            "sender_avatar": sender_avatar,
            "recognized_faces": recognized_faces,
        })


class FakePeerChannel(PeerChannel):
    def __init__(self, peers: Sequence[str] = (), fail: bool = False) -> None:
        self.peers = list(peers)
        self.fail = fail
        self.sent: List[tuple] = []
        self.handler: Optional[PeerChannelHandler] = None

    @property
    def connected_peers(self) -> List[str]:
        return list(self.peers)

    def set_handler(self, handler: PeerChannelHandler) -> None:
        self.handler = handler

    async def send(self, payload: bytes, peer_id: Optional[str] = None) -> None:
        if self.fail:
            raise PeerChannelError("Channel closed")
        self.sent.append((payload, peer_id))


class FakeContactsProvider(ContactsProvider):
    def __init__(self, contacts: Sequence[Contact] = ()) -> None:
        self.contacts = {contact.identifier: contact for contact in contacts}

    async def fetch_contacts_with_images(self) -> List[Contact]:
        return [contact for contact in self.contacts.values() if contact.image_bytes]

    async def fetch_contact(self, identifier: str) -> Optional[Contact]:
        return self.contacts.get(identifier)


class InMemoryIdentityStore(IdentityStore):
    def __init__(self) -> None:
        self.identities: List[KnownIdentity] = []
        self.fail_reads = False
        self.fail_writes = False

    async def load_identities(self) -> List[KnownIdentity]:
        if self.fail_reads:
            raise IdentityStoreError("Store unavailable")
        return list(self.identities)

    async def save_identities(self, identities: Sequence[KnownIdentity]) -> None:
        if self.fail_writes:
            raise OSError("Disk full")
        self.identities = list(identities)


@pytest.fixture
def scorer() -> SimilarityScorer:
    return SimilarityScorer()


@pytest.fixture
def resolver(scorer) -> MatchResolver:
    return MatchResolver(scorer)


@pytest.fixture
def identity_store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def registry(resolver, identity_store) -> IdentityRegistry:
    return IdentityRegistry(resolver, identity_store)


@pytest.fixture
def embedding_model() -> FakeEmbeddingModel:
    return FakeEmbeddingModel()


@pytest.fixture
def extractor(embedding_model) -> EmbeddingExtractor:
    return EmbeddingExtractor(embedding_model)


@pytest.fixture
def whole_face_box() -> BoundingBox:
    """Box covering most of a `face_image()`."""
    return BoundingBox(left=5, top=5, width=90, height=110, confidence=0.99)


@pytest.fixture
def photo_sink() -> RecordingPhotoSink:
    return RecordingPhotoSink()


@pytest.fixture
def alice() -> np.ndarray:
    return block_embedding(0, 64)


@pytest.fixture
def bob() -> np.ndarray:
    return block_embedding(64, 128)
