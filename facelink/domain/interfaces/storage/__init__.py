"""Storage interfaces package."""
from .identity_store import IdentityStore
from .photo_sink import PhotoSink

__all__ = ["IdentityStore", "PhotoSink"]
