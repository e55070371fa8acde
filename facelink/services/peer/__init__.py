"""Peer exchange services package."""
from .codec import decode_payload, encode_embedding, encode_image, encode_profile_info
from .exchange import PeerExchangeCoordinator

__all__ = [
    "PeerExchangeCoordinator",
    "decode_payload",
    "encode_embedding",
    "encode_image",
    "encode_profile_info",
]
