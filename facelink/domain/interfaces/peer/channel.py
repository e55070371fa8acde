"""Peer channel interfaces."""
from abc import ABC, abstractmethod
from typing import List, Optional


class PeerChannelHandler(ABC):
    """Callbacks a peer channel delivers events to."""

    @abstractmethod
    async def on_peer_connected(self, peer_id: str) -> None:
        pass

    @abstractmethod
    async def on_peer_disconnected(self, peer_id: str) -> None:
        pass

    @abstractmethod
    async def on_receive(self, payload: bytes, from_peer_id: str) -> None:
        pass


class PeerChannel(ABC):
    """Reliable, already authenticated byte channel to nearby devices."""

    @property
    @abstractmethod
    def connected_peers(self) -> List[str]:
        """Identifiers of currently connected peers."""
        pass

    @abstractmethod
    def set_handler(self, handler: PeerChannelHandler) -> None:
        """Register the receiver of connection and payload events."""
        pass

    @abstractmethod
    async def send(self, payload: bytes, peer_id: Optional[str] = None) -> None:
        """
        Send bytes to one peer, or to every connected peer when `peer_id` is None.

        Raises:
            PeerChannelError: If delivery fails
        """
        pass
