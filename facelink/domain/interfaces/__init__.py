"""Service interfaces package."""
from .contacts import ContactsProvider
from .peer import PeerChannel, PeerChannelHandler
from .recognition import EmbeddingModel, FaceDetector
from .storage import IdentityStore, PhotoSink

__all__ = [
    "ContactsProvider",
    "EmbeddingModel",
    "FaceDetector",
    "IdentityStore",
    "PeerChannel",
    "PeerChannelHandler",
    "PhotoSink",
]
