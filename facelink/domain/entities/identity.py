"""Known identity entities and trust tiers."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from facelink.domain.entities.face import as_embedding


class TrustTier(str, Enum):
    """Where a known identity came from.

    SELF_PROFILE and CONTACT are sourced from data verified on this device,
    PEER from unverified network exchange. The values are the tags written to
    the identity store.
    """
    SELF_PROFILE = "userProfile"
    CONTACT = "contact"
    PEER = "peer"


def trust_score_for(
    tier: TrustTier,
    family_relation: bool = False,
    self_profile: float = 1.0,
    contact_family: float = 0.9,
    contact: float = 0.7,
    peer: float = 0.5,
) -> float:
    """Fixed trust multiplier for a tier.

    Contacts sharing the user's family name are trusted more than other contacts.
    """
    if tier is TrustTier.SELF_PROFILE:
        return self_profile
    if tier is TrustTier.CONTACT:
        return contact_family if family_relation else contact
    if tier is TrustTier.PEER:
        return peer
    raise ValueError(f"Unknown trust tier: {tier!r}")


class KnownIdentity(BaseModel):
    """A labelled reference face the registry matches against.

    Instances are frozen and their embedding array is read-only; an update is
    expressed as a new identity replacing the stale one.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Immutable identifier")
    embedding: np.ndarray = Field(..., description="Reference embedding")
    display_name: Optional[str] = Field(None, description="Human-readable label")
    trust_tier: TrustTier = Field(..., description="Source of the identity")
    trust_score: float = Field(..., gt=0.0, le=1.0, description="Multiplier applied to raw similarity")
    external_ref: Optional[str] = Field(None, description="Opaque address-book reference")
    family_relation: bool = Field(False, description="Contact shares the user's family name")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the identity was registered",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("embedding", mode="before")
    @classmethod
    def validate_embedding(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Convert to a read-only float32 array."""
        return as_embedding(v)
