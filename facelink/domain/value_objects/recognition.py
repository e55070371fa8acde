"""Face recognition value objects."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from facelink.domain.entities.face import FaceCapture
from facelink.domain.entities.identity import TrustTier


class ImageQualityMetrics(BaseModel):
    """Quality attributes of a face crop, computed right before extraction."""
    brightness: float = Field(..., ge=0.0, le=1.0, description="Mean luma")
    contrast: float = Field(..., ge=0.0, le=1.0, description="Max minus min luma")
    is_blurred: bool = Field(..., description="Laplacian variance below the blur threshold")
    quality: float = Field(..., ge=0.0, le=1.0, description="Composite quality score")


class MatchResult(BaseModel):
    """Best known identity for a face."""
    display_name: Optional[str] = Field(None, description="Label of the matched identity")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Similarity times trust score")
    trust_tier: TrustTier = Field(..., description="Tier of the matched identity")
    identity_id: Optional[str] = Field(None, description="Identifier of the matched identity")


class RecognizedFace(BaseModel):
    """A face label attached to a stored photo."""
    name: Optional[str] = Field(None, description="Recognized name")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Match confidence")
    trust_tier: TrustTier = Field(..., description="Tier the label came from")

    @classmethod
    def from_match(cls, match: MatchResult) -> "RecognizedFace":
        return cls(name=match.display_name, confidence=match.confidence, trust_tier=match.trust_tier)


class FaceCluster(BaseModel):
    """Faces from one scan batch judged to be the same person."""
    faces: List[FaceCapture] = Field(..., min_length=1, description="Members in input order")

    @property
    def seed(self) -> FaceCapture:
        return self.faces[0]

    def __len__(self) -> int:
        return len(self.faces)


class RegistryEventKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CLEARED = "cleared"
    LOADED = "loaded"


class RegistryEvent(BaseModel):
    """Change notification emitted by the identity registry."""
    kind: RegistryEventKind
    identity_ids: List[str] = Field(default_factory=list)
