"""Core face domain entities."""
import uuid
from datetime import datetime
from typing import Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_embedding(value: Union[np.ndarray, list, tuple]) -> np.ndarray:
    """Convert a sequence of numbers to a read-only 1-D float32 embedding."""
    array = np.array(value, dtype=np.float32).reshape(-1)
    array.flags.writeable = False
    return array


class BoundingBox(BaseModel):
    """Face bounding box in image pixel coordinates."""
    left: float = Field(..., description="Left coordinate of the bounding box")
    top: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., description="Width of the bounding box")
    height: float = Field(..., description="Height of the bounding box")
    confidence: Optional[float] = Field(None, description="Detector confidence score")


class FaceCapture(BaseModel):
    """A face cropped out of a photo together with its embedding."""
    capture_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique identifier")
    image: np.ndarray = Field(..., description="Padded face crop (BGR)")
    full_image: np.ndarray = Field(..., description="Photo the face was cropped from (BGR)")
    embedding: np.ndarray = Field(..., description="L2-normalized face embedding")
    photo_id: Optional[str] = Field(None, description="Identifier of the source photo")
    captured_at: Optional[datetime] = Field(None, description="Capture time of the source photo")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("embedding", mode="before")
    @classmethod
    def validate_embedding(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Store embeddings as read-only float32 arrays."""
        return as_embedding(v)


class LibraryPhoto(BaseModel):
    """A photo from the local library queued for scanning."""
    photo_id: str = Field(..., description="Library identifier")
    image: np.ndarray = Field(..., description="Decoded photo (BGR)")
    captured_at: Optional[datetime] = Field(None, description="Capture time, used for ordering")

    model_config = ConfigDict(arbitrary_types_allowed=True)
