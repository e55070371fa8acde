"""
Seeding of the identity registry from locally verified sources.

The user's own profile photo becomes the SelfProfile identity and every
address-book contact with a photo becomes a Contact identity. Faces are
cropped around the first detected face, or from the centre of the image
when the detector finds none.

Example:
    ```python
    labeling = FaceLabelingService(detector, extractor, registry, profile_store, contacts)
    await labeling.add_user_profile_face(image, "Alice")
    await labeling.process_contacts()
    ```
"""
from typing import Optional, Tuple

import numpy as np

from facelink.core.config import settings
from facelink.core.exceptions import FaceLinkError, InvalidImageError
from facelink.core.logging import get_logger
from facelink.core.utils.image import bytes_to_numpy_array, center_crop, crop_with_padding
from facelink.domain.entities.identity import TrustTier
from facelink.domain.entities.people import Contact
from facelink.domain.interfaces.contacts import ContactsProvider
from facelink.domain.interfaces.recognition.face_detector import FaceDetector
from facelink.services.identity_registry import IdentityRegistry
from facelink.services.recognition.embedding_extractor import EmbeddingExtractor
from facelink.services.user_profile import UserProfileStore

logger = get_logger(__name__)


class FaceLabelingService:
    """Adds SelfProfile and Contact identities to the registry.

    Attributes:
        is_processing: A contacts pass is running
        processed: Contacts handled in the current or last pass
        total: Contacts in the current or last pass
    """

    def __init__(
        self,
        detector: FaceDetector,
        extractor: EmbeddingExtractor,
        registry: IdentityRegistry,
        profile_store: UserProfileStore,
        contacts: Optional[ContactsProvider] = None,
    ) -> None:
        self.detector = detector
        self.extractor = extractor
        self.registry = registry
        self.profile_store = profile_store
        self.contacts = contacts
        self.is_processing = False
        self.processed = 0
        self.total = 0

    @property
    def progress(self) -> float:
        return self.processed / self.total if self.total else 0.0

    def crop_face(self, image: np.ndarray) -> np.ndarray:
        """Crop the most confident face, falling back to a centre crop.

        Raises:
            InvalidImageError: If the image is empty
        """
        if image is None or image.size == 0:
            raise InvalidImageError("Empty image")

        try:
            boxes = self.detector.detect_faces(image)
        except InvalidImageError as e:
            logger.warning("Face detection failed, using centre crop", error=str(e))
            boxes = []

        if boxes:
            try:
                return crop_with_padding(image, boxes[0], settings.FACE_PADDING)
            except ValueError as e:
                logger.warning("Face box unusable, using centre crop", error=str(e))

        logger.debug("No face detected, using centre crop", image_shape=image.shape)
        return center_crop(image, settings.CENTER_CROP_RATIO)

    async def add_user_profile_face(self, image: np.ndarray, name: str) -> str:
        """
        Register the user's profile photo as the SelfProfile identity.

        An earlier SelfProfile identity with the same name is replaced. The
        embedding is also stored on the user profile.

        Args:
            image: Profile photo as a BGR array
            name: User's display name

        Returns:
            Identifier of the new identity

        Raises:
            InvalidImageError: If the crop fails the quality gate
            ProcessingError: If extraction fails
        """
        crop = self.crop_face(image)
        embedding = self.extractor.extract(crop)

        identity_id = self.registry.add_face(
            embedding,
            display_name=name,
            trust_tier=TrustTier.SELF_PROFILE,
        )
        self.profile_store.update_profile(display_name=name, embedding=embedding)
        logger.info("Added user profile face", name=name, identity_id=identity_id)
        return identity_id

    def _is_family(self, contact: Contact) -> bool:
        family_name = self.profile_store.profile.family_name
        if not family_name or not contact.family_name:
            return False
        return contact.family_name.lower() == family_name.lower()

    def add_contact_face(self, contact: Contact) -> Optional[str]:
        """Register one contact's photo; returns None if the contact has no photo.

        Raises:
            InvalidImageError: If the photo cannot be decoded or fails the quality gate
            ProcessingError: If extraction fails
        """
        if not contact.image_bytes:
            return None

        try:
            image = bytes_to_numpy_array(contact.image_bytes)
        except ValueError as e:
            raise InvalidImageError(str(e), details={"contact": contact.identifier})

        embedding = self.extractor.extract(self.crop_face(image))
        return self.registry.add_face(
            embedding,
            display_name=contact.given_name or contact.display_name,
            trust_tier=TrustTier.CONTACT,
            external_ref=contact.identifier,
            family_relation=self._is_family(contact),
        )

    async def process_contacts(self) -> int:
        """
        Register every contact that has a photo.

        A contact whose photo cannot be processed is logged and skipped.

        Returns:
            Number of Contact identities added
        """
        if self.contacts is None:
            logger.warning("No contacts provider configured")
            return 0

        self.is_processing = True
        added = 0
        try:
            contacts = await self.contacts.fetch_contacts_with_images()
            self.processed = 0
            self.total = len(contacts)

            for contact in contacts:
                try:
                    if self.add_contact_face(contact) is not None:
                        added += 1
                except FaceLinkError as e:
                    logger.warning(
                        "Skipping contact",
                        contact=contact.identifier,
                        error=str(e),
                    )
                self.processed += 1
        finally:
            self.is_processing = False

        logger.info("Processed contacts", total=self.total, added=added)
        return added

    async def contact_display_info(self, embedding: np.ndarray) -> Optional[Tuple[str, Optional[bytes]]]:
        """
        Name and avatar of the contact a face belongs to.

        Returns:
            (display name, avatar bytes) when the best match is a Contact
            identity still present in the address book, otherwise None
        """
        match = self.registry.find_match(embedding)
        if match is None or match.trust_tier is not TrustTier.CONTACT or self.contacts is None:
            return None

        identity = self.registry.get(match.identity_id)
        if identity is None or identity.external_ref is None:
            return None

        contact = await self.contacts.fetch_contact(identity.external_ref)
        if contact is None:
            return None
        return contact.display_name, contact.image_bytes
