"""Address-book contacts and the local user's profile."""
from typing import Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from facelink.domain.entities.face import as_embedding


class Contact(BaseModel):
    """Address-book entry as delivered by the contacts provider."""
    identifier: str = Field(..., description="Address-book identifier")
    given_name: str = Field("", description="Given name")
    family_name: str = Field("", description="Family name")
    nickname: str = Field("", description="Nickname")
    image_bytes: Optional[bytes] = Field(None, description="Encoded contact photo")

    @property
    def display_name(self) -> str:
        """Nickname if set, else full name, else whichever name part exists."""
        if self.nickname:
            return self.nickname
        if self.given_name and self.family_name:
            return f"{self.given_name} {self.family_name}"
        return self.given_name or self.family_name


class UserProfile(BaseModel):
    """The local user's identity."""
    display_name: Optional[str] = Field(None, description="Name shown to peers")
    family_name: Optional[str] = Field(None, description="Used to flag family contacts")
    embedding: Optional[np.ndarray] = Field(None, description="Embedding of the profile photo")
    profile_image: Optional[bytes] = Field(None, description="Encoded profile photo")
    contact_identifier: Optional[str] = Field(None, description="Own address-book entry")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("embedding", mode="before")
    @classmethod
    def validate_embedding(cls, v: Optional[Union[np.ndarray, list]]) -> Optional[np.ndarray]:
        if v is None:
            return None
        return as_embedding(v)
