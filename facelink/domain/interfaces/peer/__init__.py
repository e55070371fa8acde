"""Peer interfaces package."""
from .channel import PeerChannel, PeerChannelHandler

__all__ = ["PeerChannel", "PeerChannelHandler"]
