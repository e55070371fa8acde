"""Peer exchange value objects."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProfileInfo(BaseModel):
    """Profile message a device sends to each newly connected peer."""
    name: str = Field(..., description="Sender's display name")
    embedding: List[float] = Field(..., description="Sender's profile embedding")
    has_profile_image: bool = Field(False, alias="hasProfileImage", description="A profile image follows")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class PeerIdentity(BaseModel):
    """Who a connected peer is believed to be."""
    peer_id: str = Field(..., description="Channel identifier of the peer")
    display_name: str = Field(..., description="Name to show for the peer")
    avatar: Optional[bytes] = Field(None, description="Encoded avatar image")
    identity_id: Optional[str] = Field(None, description="Matched contact identity, if any")
    awaiting_avatar: bool = Field(False, description="ProfileInfo announced a profile image still to come")
