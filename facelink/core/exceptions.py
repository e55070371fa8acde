"""Custom exceptions for the face matching engine."""
from typing import Optional


class FaceLinkError(Exception):
    """Base exception for face matching operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face matching error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class InvalidImageError(FaceLinkError):
    """Raised when an image fails the quality gate or cannot be decoded."""
    pass


class ProcessingError(FaceLinkError):
    """Raised when inference or embedding normalization fails."""
    pass


class ModelLoadError(FaceLinkError):
    """Raised when the embedding model fails to load."""
    pass


class MatchingUnavailableError(FaceLinkError):
    """Raised when matching is requested but no embedding model is loaded."""
    pass


class IdentityStoreError(FaceLinkError):
    """Raised when the durable identity store cannot be read or written."""
    pass


class PeerChannelError(FaceLinkError):
    """Raised when a payload cannot be delivered over the peer channel."""
    pass


class PayloadDecodeError(PeerChannelError):
    """Raised when a received payload matches no known message format."""
    pass


class ScanInProgressError(FaceLinkError):
    """Raised when a library scan is started while another one is running."""
    pass
