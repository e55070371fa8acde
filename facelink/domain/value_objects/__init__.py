"""Value objects package."""
from .peer import PeerIdentity, ProfileInfo
from .recognition import (
    FaceCluster,
    ImageQualityMetrics,
    MatchResult,
    RecognizedFace,
    RegistryEvent,
    RegistryEventKind,
)

__all__ = [
    "FaceCluster",
    "ImageQualityMetrics",
    "MatchResult",
    "RecognizedFace",
    "RegistryEvent",
    "RegistryEventKind",
    "PeerIdentity",
    "ProfileInfo",
]
