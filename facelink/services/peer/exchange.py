"""
Peer exchange coordinator.

Handles the events of the peer channel:

- On connect the local profile is advertised: embedding, then ProfileInfo,
  then the profile image when there is one.
- A received embedding is matched against the local face groups (to share
  the best matching photo back) and against Contact identities (to learn
  who the peer is).
- A received ProfileInfo names the peer.
- A received image is the peer's avatar if it still has none, otherwise a
  shared photo. Shared photos wait in a pending queue until the sender is
  known.

Send failures are reported to the caller of `send_embedding` and
`broadcast_embeddings`; failures while advertising or auto-sharing are
logged and leave local matching state untouched.

Example:
    ```python
    coordinator = PeerExchangeCoordinator(channel, registry, scorer, capture_store,
                                          photo_recognition, profile_store, contacts)
    channel.set_handler(coordinator)
    ```
"""
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from facelink.core.config import settings
from facelink.core.exceptions import PayloadDecodeError, PeerChannelError
from facelink.core.logging import get_logger
from facelink.core.utils.image import image_digest
from facelink.domain.entities.face import FaceCapture, as_embedding
from facelink.domain.entities.identity import TrustTier
from facelink.domain.interfaces.contacts import ContactsProvider
from facelink.domain.interfaces.peer.channel import PeerChannel, PeerChannelHandler
from facelink.domain.value_objects.peer import PeerIdentity, ProfileInfo
from facelink.services.capture_store import FaceCaptureStore
from facelink.services.identity_registry import IdentityRegistry
from facelink.services.peer.codec import (
    EmbeddingMessage,
    ImageMessage,
    decode_payload,
    encode_embedding,
    encode_image,
    encode_profile_info,
)
from facelink.services.photo_recognition import PhotoRecognitionService
from facelink.services.similarity import SimilarityScorer
from facelink.services.user_profile import UserProfileStore

logger = get_logger(__name__)


class PeerExchangeCoordinator(PeerChannelHandler):
    """Exchanges embeddings with peers and routes what they send.

    Attributes:
        auto_share: Send the best matching local photo to a peer whose
            embedding is received
    """

    def __init__(
        self,
        channel: PeerChannel,
        registry: IdentityRegistry,
        scorer: SimilarityScorer,
        capture_store: FaceCaptureStore,
        photo_recognition: PhotoRecognitionService,
        profile_store: UserProfileStore,
        contacts: Optional[ContactsProvider] = None,
        auto_share: bool = False,
    ) -> None:
        self.channel = channel
        self.registry = registry
        self.scorer = scorer
        self.capture_store = capture_store
        self.photo_recognition = photo_recognition
        self.profile_store = profile_store
        self.contacts = contacts
        self.auto_share = auto_share

        self.connected: List[str] = []
        self.peers: Dict[str, PeerIdentity] = {}
        self.received_embeddings: Dict[str, np.ndarray] = {}
        self.pending_photos: List[Tuple[np.ndarray, str]] = []
        self._seen_images: Set[str] = set()

    def peer_identity(self, peer_id: str) -> Optional[PeerIdentity]:
        return self.peers.get(peer_id)

    async def _send(self, payload: bytes, peer_id: Optional[str]) -> None:
        try:
            await self.channel.send(payload, peer_id)
        except PeerChannelError:
            raise
        except Exception as e:
            raise PeerChannelError(f"Failed to send payload: {str(e)}", details={"peer_id": peer_id})

    async def send_embedding(self, embedding: np.ndarray, peer_id: Optional[str] = None) -> None:
        """
        Send an embedding to one peer, or broadcast it when `peer_id` is None.

        Raises:
            PeerChannelError: If delivery fails
        """
        await self._send(encode_embedding(embedding), peer_id)
        logger.debug("Sent embedding", peer_id=peer_id or "broadcast", dimension=int(np.asarray(embedding).size))

    async def broadcast_embeddings(self, embeddings: Sequence[np.ndarray]) -> None:
        """
        Send every embedding to all connected peers.

        Raises:
            PeerChannelError: If no peer is connected or a send fails
        """
        if not self.channel.connected_peers:
            raise PeerChannelError("No connected peers")
        for embedding in embeddings:
            await self.send_embedding(embedding)
        logger.info("Broadcast embeddings", count=len(embeddings), peers=len(self.channel.connected_peers))

    async def send_photo(self, image: np.ndarray, peer_id: str) -> None:
        """
        Raises:
            PeerChannelError: If the photo cannot be encoded or delivered
        """
        try:
            payload = encode_image(image)
        except ValueError as e:
            raise PeerChannelError(str(e), details={"peer_id": peer_id})
        await self._send(payload, peer_id)
        logger.info("Sent photo", peer_id=peer_id)

    async def on_peer_connected(self, peer_id: str) -> None:
        if peer_id not in self.connected:
            self.connected.append(peer_id)
        logger.info("Peer connected", peer_id=peer_id)

        profile = self.profile_store.profile
        if profile.embedding is None:
            logger.warning("No profile embedding to advertise", peer_id=peer_id)
            return

        try:
            await self.send_embedding(profile.embedding, peer_id)
            info = ProfileInfo(
                name=profile.display_name or peer_id,
                embedding=profile.embedding.tolist(),
                has_profile_image=profile.profile_image is not None,
            )
            await self._send(encode_profile_info(info), peer_id)
            if profile.profile_image is not None:
                await self._send(profile.profile_image, peer_id)
        except PeerChannelError as e:
            logger.error("Failed to advertise profile", peer_id=peer_id, error=str(e))

    async def on_peer_disconnected(self, peer_id: str) -> None:
        if peer_id in self.connected:
            self.connected.remove(peer_id)
        self.received_embeddings.pop(peer_id, None)
        logger.info("Peer disconnected", peer_id=peer_id)
        if peer_id not in self.peers and any(sender == peer_id for _, sender in self.pending_photos):
            self.peers[peer_id] = PeerIdentity(peer_id=peer_id, display_name=peer_id)
            await self.flush_pending_photos()

    async def on_receive(self, payload: bytes, from_peer_id: str) -> None:
        try:
            message = decode_payload(payload)
        except PayloadDecodeError as e:
            logger.warning("Ignoring unrecognised payload", peer_id=from_peer_id, error=str(e), details=e.details)
            return

        if isinstance(message, EmbeddingMessage):
            await self.on_embedding_received(message.embedding, from_peer_id)
        elif isinstance(message, ProfileInfo):
            await self.on_profile_info_received(message, from_peer_id)
        elif isinstance(message, ImageMessage):
            await self.on_image_received(message, from_peer_id)

    async def on_embedding_received(self, embedding: np.ndarray, peer_id: str) -> Optional[PeerIdentity]:
        """
        Handle an embedding sent by a peer.

        Args:
            embedding: The peer's face embedding
            peer_id: Channel identifier of the sender

        Returns:
            What the peer is now believed to be
        """
        embedding = as_embedding(embedding)
        self.received_embeddings[peer_id] = embedding
        logger.info("Received embedding", peer_id=peer_id, dimension=int(embedding.size))

        await self._share_best_capture(embedding, peer_id)
        return await self._resolve_peer(embedding, peer_id)

    async def _share_best_capture(self, embedding: np.ndarray, peer_id: str) -> Optional[FaceCapture]:
        best = self.capture_store.best_capture(embedding, self.scorer)
        if best is None:
            return None

        capture, similarity = best
        logger.debug("Best local capture for peer", peer_id=peer_id, similarity=similarity)
        if not self.auto_share or similarity <= settings.AUTO_SHARE_THRESHOLD:
            return None

        try:
            await self.send_photo(capture.full_image, peer_id)
        except PeerChannelError as e:
            logger.error("Failed to share photo", peer_id=peer_id, error=str(e))
            return None
        return capture

    async def _resolve_peer(self, embedding: np.ndarray, peer_id: str) -> PeerIdentity:
        match = self.registry.find_match(embedding, tiers=[TrustTier.CONTACT])
        if match is not None and match.confidence >= settings.PEER_CONTACT_THRESHOLD:
            name = match.display_name or peer_id
            avatar = None
            identity = self.registry.get(match.identity_id) if match.identity_id else None
            if identity is not None and identity.external_ref and self.contacts is not None:
                contact = await self.contacts.fetch_contact(identity.external_ref)
                if contact is not None:
                    name = contact.display_name or name
                    avatar = contact.image_bytes

            current = self.peers.get(peer_id)
            peer = PeerIdentity(
                peer_id=peer_id,
                display_name=name,
                avatar=avatar,
                identity_id=match.identity_id,
                awaiting_avatar=current.awaiting_avatar if current else False,
            )
            self.peers[peer_id] = peer
            logger.info(
                "Matched peer to contact",
                peer_id=peer_id,
                display_name=name,
                confidence=match.confidence,
            )
            await self.flush_pending_photos()
            return peer

        if peer_id not in self.peers:
            self.peers[peer_id] = PeerIdentity(peer_id=peer_id, display_name=peer_id)
            logger.info("No contact match for peer, using channel id", peer_id=peer_id)
            await self.flush_pending_photos()
        return self.peers[peer_id]

    async def on_profile_info_received(self, info: ProfileInfo, peer_id: str) -> PeerIdentity:
        current = self.peers.get(peer_id)
        peer = PeerIdentity(
            peer_id=peer_id,
            display_name=info.name,
            avatar=current.avatar if current else None,
            identity_id=current.identity_id if current else None,
            awaiting_avatar=info.has_profile_image,
        )
        self.peers[peer_id] = peer
        logger.info("Received profile info", peer_id=peer_id, display_name=info.name)
        await self.flush_pending_photos()
        return peer

    async def on_image_received(self, message: ImageMessage, peer_id: str) -> None:
        peer = self.peers.get(peer_id)
        if peer is not None and peer.awaiting_avatar:
            update = {"awaiting_avatar": False}
            if peer.avatar is None:
                update["avatar"] = message.payload
            self.peers[peer_id] = peer.model_copy(update=update)
            logger.info("Received peer avatar", peer_id=peer_id)
            return

        digest = image_digest(message.image)
        if digest in self._seen_images:
            logger.debug("Ignoring duplicate photo", peer_id=peer_id)
            return
        self._seen_images.add(digest)

        if peer is None:
            self.pending_photos.append((message.image, peer_id))
            logger.info("Queued photo until sender is known", peer_id=peer_id, pending=len(self.pending_photos))
            return

        await self.photo_recognition.process_photo(
            message.image,
            sender_name=peer.display_name,
            sender_avatar=peer.avatar,
        )

    async def flush_pending_photos(self) -> int:
        """Store queued photos whose sender is now known; returns how many were stored."""
        queued, self.pending_photos = self.pending_photos, []
        stored = 0
        for image, peer_id in queued:
            peer = self.peers.get(peer_id)
            if peer is None:
                self.pending_photos.append((image, peer_id))
                continue
            await self.photo_recognition.process_photo(
                image,
                sender_name=peer.display_name,
                sender_avatar=peer.avatar,
            )
            stored += 1

        if stored:
            logger.info("Stored pending photos", stored=stored, remaining=len(self.pending_photos))
        return stored
