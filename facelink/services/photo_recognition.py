"""
Photo recognition service.

Detects every face in a photo, extracts and resolves each one, and hands the
photo to the photo sink with the faces that were recognised. A photo is
always stored, with an empty label list when nothing matched.

Example:
    ```python
    service = PhotoRecognitionService(detector, extractor, registry, sink)
    labels = await service.process_photo(image, sender_name="Bob")
    ```
"""
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np

from facelink.core.config import settings
from facelink.core.exceptions import FaceLinkError, InvalidImageError
from facelink.core.logging import get_logger
from facelink.core.utils.image import crop_with_padding
from facelink.domain.entities.face import FaceCapture
from facelink.domain.entities.identity import TrustTier
from facelink.domain.interfaces.recognition.face_detector import FaceDetector
from facelink.domain.interfaces.storage.photo_sink import PhotoSink
from facelink.domain.value_objects.recognition import RecognizedFace
from facelink.services.identity_registry import IdentityRegistry
from facelink.services.recognition.embedding_extractor import EmbeddingExtractor

logger = get_logger(__name__)


class PhotoRecognitionService:
    """Labels the faces of whole photos against the identity registry."""

    def __init__(
        self,
        detector: FaceDetector,
        extractor: EmbeddingExtractor,
        registry: IdentityRegistry,
        sink: PhotoSink,
        padding: Optional[float] = None,
        min_confidence: Optional[float] = None,
    ) -> None:
        """
        Args:
            detector: Face region detector
            extractor: Embedding extractor
            registry: Known identities to resolve against
            sink: Receiver of processed photos
            padding: Crop margin relative to box size (defaults to settings)
            min_confidence: Minimum confidence to label a face (defaults to settings)
        """
        self.detector = detector
        self.extractor = extractor
        self.registry = registry
        self.sink = sink
        self.padding = padding if padding is not None else settings.FACE_PADDING
        self.min_confidence = (
            min_confidence if min_confidence is not None else settings.RECOGNIZED_FACE_MIN_CONFIDENCE
        )

    def extract_faces(
        self,
        image: np.ndarray,
        photo_id: Optional[str] = None,
        captured_at: Optional[datetime] = None,
    ) -> List[FaceCapture]:
        """
        Detect, crop and embed every face in a photo.

        Faces whose crop fails the quality gate or inference are skipped.

        Raises:
            InvalidImageError: If detection fails on the photo itself
        """
        if image is None or image.size == 0:
            raise InvalidImageError("Empty photo")

        captures = []
        for box in self.detector.detect_faces(image):
            try:
                crop = crop_with_padding(image, box, self.padding)
                embedding = self.extractor.extract(crop)
            except (FaceLinkError, ValueError) as e:
                logger.warning("Skipping face", photo_id=photo_id, error=str(e))
                continue

            captures.append(FaceCapture(
                image=crop,
                full_image=image,
                embedding=embedding,
                photo_id=photo_id,
                captured_at=captured_at,
            ))
        return captures

    def recognize(self, image: np.ndarray, photo_id: Optional[str] = None) -> List[RecognizedFace]:
        """Resolve every face in a photo; faces below the label floor are left out."""
        recognized = []
        for capture in self.extract_faces(image, photo_id=photo_id):
            match = self.registry.find_match(capture.embedding)
            if match is None or match.confidence < self.min_confidence:
                continue
            recognized.append(RecognizedFace.from_match(match))

        logger.debug("Recognized faces in photo", photo_id=photo_id, recognized=len(recognized))
        return recognized

    def register_peer_labels(
        self,
        image: np.ndarray,
        recognized_faces: Sequence[RecognizedFace],
    ) -> List[str]:
        """
        Register Peer-tier labels supplied with a photo.

        Labels are paired with detected faces in order; a label without a
        name or without a corresponding face is ignored.

        Returns:
            Identifiers of the identities added
        """
        peer_labels = [
            face for face in recognized_faces
            if face.trust_tier is TrustTier.PEER and face.name
        ]
        if not peer_labels:
            return []

        captures = self.extract_faces(image)
        added = []
        for label, capture in zip(peer_labels, captures):
            added.append(self.registry.add_face(
                capture.embedding,
                display_name=label.name,
                trust_tier=TrustTier.PEER,
            ))

        if len(captures) < len(peer_labels):
            logger.warning(
                "Fewer faces than peer labels",
                labels=len(peer_labels),
                faces=len(captures),
            )
        return added

    def label_photo(
        self,
        image: np.ndarray,
        recognized_faces: Optional[Sequence[RecognizedFace]] = None,
        photo_id: Optional[str] = None,
    ) -> Tuple[List[RecognizedFace], List[str]]:
        """Compute the labels to store for a photo.

        Runs synchronously so scans can call it from worker threads. Faces
        that cannot be processed leave the photo unlabelled instead of
        failing it.

        Returns:
            The labels and the ids of any Peer identities registered
        """
        if recognized_faces is not None:
            try:
                added = self.register_peer_labels(image, recognized_faces)
            except FaceLinkError as e:
                logger.warning("Could not register peer labels", photo_id=photo_id, error=str(e))
                added = []
            return list(recognized_faces), added

        try:
            return self.recognize(image, photo_id=photo_id), []
        except FaceLinkError as e:
            logger.warning("Face recognition failed for photo", photo_id=photo_id, error=str(e))
            return [], []

    async def save(
        self,
        image: np.ndarray,
        recognized_faces: List[RecognizedFace],
        sender_name: Optional[str] = None,
        sender_avatar: Optional[bytes] = None,
    ) -> None:
        await self.sink.save_photo(
            image,
            sender_name=sender_name,
            sender_avatar=sender_avatar,
            recognized_faces=recognized_faces,
        )

    async def process_photo(
        self,
        image: np.ndarray,
        sender_name: Optional[str] = None,
        sender_avatar: Optional[bytes] = None,
        recognized_faces: Optional[Sequence[RecognizedFace]] = None,
        photo_id: Optional[str] = None,
    ) -> List[RecognizedFace]:
        """
        Label a photo and store it.

        Args:
            image: Photo as a BGR array
            sender_name: Peer that sent the photo, if any
            sender_avatar: That peer's avatar
            recognized_faces: Labels supplied with the photo; when given they
                are stored as-is and their Peer-tier entries are registered
            photo_id: Identifier used in logs

        Returns:
            The labels the photo was stored with
        """
        labels, added = self.label_photo(image, recognized_faces, photo_id=photo_id)
        await self.save(image, labels, sender_name=sender_name, sender_avatar=sender_avatar)

        logger.info(
            "Processed photo",
            photo_id=photo_id,
            sender=sender_name,
            recognized=len(labels),
            registered=len(added),
        )
        return labels
