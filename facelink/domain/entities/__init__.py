"""Domain entities package."""
from .face import BoundingBox, FaceCapture, LibraryPhoto, as_embedding
from .identity import KnownIdentity, TrustTier, trust_score_for
from .people import Contact, UserProfile

__all__ = [
    "BoundingBox",
    "FaceCapture",
    "LibraryPhoto",
    "as_embedding",
    "KnownIdentity",
    "TrustTier",
    "trust_score_for",
    "Contact",
    "UserProfile",
]
