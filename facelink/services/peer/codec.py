"""
Wire format of peer messages.

Three message kinds travel over the peer channel:

- Embedding: ``b"FLE1"`` + uint32 count + count little-endian float32
  values. A JSON array of numbers is accepted on decode as well.
- ProfileInfo: JSON object ``{"name", "embedding", "hasProfileImage"}``.
- Image: any encoded image OpenCV can decode.
"""
import struct
from typing import List, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from facelink.core.exceptions import PayloadDecodeError
from facelink.core.utils.image import bytes_to_numpy_array, numpy_array_to_bytes
from facelink.domain.entities.face import as_embedding
from facelink.domain.value_objects.peer import ProfileInfo

EMBEDDING_MAGIC = b"FLE1"
_HEADER = struct.Struct("<4sI")
_FLOAT_LIST = TypeAdapter(List[float])


class EmbeddingMessage(BaseModel):
    embedding: np.ndarray

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ImageMessage(BaseModel):
    image: np.ndarray
    payload: bytes

    model_config = ConfigDict(arbitrary_types_allowed=True)


PeerMessage = Union[EmbeddingMessage, ProfileInfo, ImageMessage]


def encode_embedding(embedding: np.ndarray) -> bytes:
    """Binary float32 encoding; values round-trip exactly."""
    values = np.asarray(embedding, dtype="<f4").reshape(-1)
    return _HEADER.pack(EMBEDDING_MAGIC, values.size) + values.tobytes()


def encode_profile_info(profile: ProfileInfo) -> bytes:
    return profile.model_dump_json(by_alias=True).encode("utf-8")


def encode_image(image: np.ndarray, ext: str = ".jpg") -> bytes:
    return numpy_array_to_bytes(image, ext)


def _decode_binary_embedding(payload: bytes) -> EmbeddingMessage:
    if len(payload) < _HEADER.size:
        raise PayloadDecodeError("Truncated embedding header")

    _, count = _HEADER.unpack_from(payload)
    body = payload[_HEADER.size:]
    if count == 0 or len(body) != count * 4:
        raise PayloadDecodeError(
            "Embedding length does not match its header",
            details={"declared": count, "bytes": len(body)},
        )
    return EmbeddingMessage(embedding=as_embedding(np.frombuffer(body, dtype="<f4")))


def _decode_json(payload: bytes) -> PeerMessage:
    text = payload.lstrip()
    try:
        if text.startswith(b"["):
            values = _FLOAT_LIST.validate_json(payload)
            if not values:
                raise PayloadDecodeError("Empty embedding")
            return EmbeddingMessage(embedding=as_embedding(values))
        return ProfileInfo.model_validate_json(payload)
    except ValidationError as e:
        raise PayloadDecodeError("Malformed JSON payload", details={"errors": e.errors()})


def decode_payload(payload: bytes) -> PeerMessage:
    """
    Decode a received payload.

    Raises:
        PayloadDecodeError: If the payload is none of the known message kinds
    """
    if not payload:
        raise PayloadDecodeError("Empty payload")

    if payload.startswith(EMBEDDING_MAGIC):
        return _decode_binary_embedding(payload)

    if payload.lstrip()[:1] in (b"[", b"{"):
        return _decode_json(payload)

    try:
        image = bytes_to_numpy_array(payload)
    except ValueError:
        raise PayloadDecodeError("Unrecognised payload", details={"size": len(payload)})
    return ImageMessage(image=image, payload=payload)
