"""Service container for dependency injection."""
from typing import Callable, Optional, Tuple

from facelink.core.exceptions import IdentityStoreError, MatchingUnavailableError, ModelLoadError
from facelink.core.logging import get_logger, setup_logging
from facelink.domain.entities.identity import TrustTier

# Import interfaces
from facelink.domain.interfaces.contacts import ContactsProvider
from facelink.domain.interfaces.peer.channel import PeerChannel
from facelink.domain.interfaces.recognition.embedding_model import EmbeddingModel
from facelink.domain.interfaces.recognition.face_detector import FaceDetector
from facelink.domain.interfaces.storage.identity_store import IdentityStore
from facelink.domain.interfaces.storage.photo_sink import PhotoSink

# Import concrete implementations used for instantiation
from facelink.infrastructure.database.identity_store import SqlAlchemyIdentityStore
from facelink.services.capture_store import FaceCaptureStore
from facelink.services.face_labeling import FaceLabelingService
from facelink.services.grouping import GroupingEngine
from facelink.services.identity_registry import IdentityRegistry
from facelink.services.library_scanner import LibraryScanner
from facelink.services.match_resolver import MatchResolver
from facelink.services.peer.exchange import PeerExchangeCoordinator
from facelink.services.photo_recognition import PhotoRecognitionService
from facelink.services.recognition.embedding_extractor import EmbeddingExtractor
from facelink.services.similarity import SimilarityScorer
from facelink.services.user_profile import UserProfileStore

logger = get_logger(__name__)

ModelFactory = Callable[[], Tuple[EmbeddingModel, FaceDetector]]


def load_insightface_models() -> Tuple[EmbeddingModel, FaceDetector]:
    """Load the InsightFace recognition and detection adapters.

    Raises:
        ModelLoadError: If the model pack cannot be loaded
    """
    from facelink.services.recognition.insight_face import InsightFaceDetector, InsightFaceEmbeddingModel

    return InsightFaceEmbeddingModel(), InsightFaceDetector()


class ServiceContainer:
    """Container for application services.

    This container is the application root: it builds every service from
    settings, loads the embedding model and the stored identities, and wires
    the peer coordinator to the channel when one is supplied.

    If the embedding model cannot be loaded the container runs in degraded
    mode: the registry and scorer remain available, services that need
    extraction are left unset and `model_error` holds the reason.

    Example:
        ```python
        container = ServiceContainer(channel=channel, photo_sink=sink, contacts=contacts)
        await container.initialize()

        # Get services from container
        registry = container.registry
        scanner = container.require_matching().library_scanner
        ```
    """

    def __init__(
        self,
        channel: Optional[PeerChannel] = None,
        photo_sink: Optional[PhotoSink] = None,
        contacts: Optional[ContactsProvider] = None,
        identity_store: Optional[IdentityStore] = None,
        model_factory: Optional[ModelFactory] = None,
    ) -> None:
        """Initialize empty container."""
        self.channel = channel
        self.photo_sink = photo_sink
        self.contacts = contacts
        self.model_factory = model_factory or load_insightface_models

        # Core services
        self.identity_store: Optional[IdentityStore] = identity_store
        self.scorer: Optional[SimilarityScorer] = None
        self.resolver: Optional[MatchResolver] = None
        self.registry: Optional[IdentityRegistry] = None
        self.grouping: Optional[GroupingEngine] = None
        self.profile_store: Optional[UserProfileStore] = None
        self.capture_store: Optional[FaceCaptureStore] = None

        # Services that need the embedding model
        self.embedding_model: Optional[EmbeddingModel] = None
        self.face_detector: Optional[FaceDetector] = None
        self.extractor: Optional[EmbeddingExtractor] = None
        self.labeling_service: Optional[FaceLabelingService] = None
        self.photo_recognition: Optional[PhotoRecognitionService] = None
        self.library_scanner: Optional[LibraryScanner] = None
        self.peer_coordinator: Optional[PeerExchangeCoordinator] = None

        self.model_error: Optional[ModelLoadError] = None

    @property
    def degraded(self) -> bool:
        return self.model_error is not None

    def require_matching(self) -> "ServiceContainer":
        """
        Raises:
            MatchingUnavailableError: If the embedding model is not loaded
        """
        if self.extractor is None:
            raise MatchingUnavailableError(
                "Face matching is unavailable",
                details={"reason": str(self.model_error) if self.model_error else "not initialized"},
            )
        return self

    async def initialize(self) -> None:
        """Initialize all services in the correct order."""
        setup_logging()

        if self.identity_store is None:
            store = SqlAlchemyIdentityStore()
            await store.initialize()
            self.identity_store = store

        self.scorer = SimilarityScorer()
        self.resolver = MatchResolver(self.scorer)
        self.registry = IdentityRegistry(self.resolver, self.identity_store)
        self.grouping = GroupingEngine(self.scorer)
        self.profile_store = UserProfileStore()
        self.capture_store = FaceCaptureStore()

        try:
            await self.registry.load()
        except IdentityStoreError as e:
            logger.error("Starting with an empty registry", error=str(e))
        self._restore_profile()

        try:
            self.embedding_model, self.face_detector = self.model_factory()
        except ModelLoadError as e:
            self.model_error = e
            logger.error("Embedding model unavailable, face matching disabled", error=str(e))
            return

        self.extractor = EmbeddingExtractor(self.embedding_model)
        self.labeling_service = FaceLabelingService(
            detector=self.face_detector,
            extractor=self.extractor,
            registry=self.registry,
            profile_store=self.profile_store,
            contacts=self.contacts,
        )

        if self.photo_sink is None:
            logger.warning("No photo sink configured, photo recognition disabled")
            return

        self.photo_recognition = PhotoRecognitionService(
            detector=self.face_detector,
            extractor=self.extractor,
            registry=self.registry,
            sink=self.photo_sink,
        )
        self.library_scanner = LibraryScanner(
            recognition=self.photo_recognition,
            grouping=self.grouping,
            capture_store=self.capture_store,
        )

        if self.channel is not None:
            self.peer_coordinator = PeerExchangeCoordinator(
                channel=self.channel,
                registry=self.registry,
                scorer=self.scorer,
                capture_store=self.capture_store,
                photo_recognition=self.photo_recognition,
                profile_store=self.profile_store,
                contacts=self.contacts,
            )
            self.channel.set_handler(self.peer_coordinator)

        logger.info("Service container initialized", known_faces=len(self.registry))

    def _restore_profile(self) -> None:
        """Seed the user profile from the most recent stored SelfProfile identity."""
        own = self.registry.get_known_faces(tiers=[TrustTier.SELF_PROFILE])
        if not own:
            return

        latest = own[-1]
        self.profile_store.update_profile(display_name=latest.display_name, embedding=latest.embedding)
        logger.info("Restored user profile from stored identity", identity_id=latest.id)

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        if self.library_scanner:
            self.library_scanner.stop()

        # Cleanup domain services
        self.peer_coordinator = None
        self.library_scanner = None
        self.photo_recognition = None
        self.labeling_service = None
        self.extractor = None

        # Cleanup core services
        self.embedding_model = None
        self.face_detector = None
        self.registry = None
        self.resolver = None
        self.scorer = None

        # Cleanup infrastructure services
        if isinstance(self.identity_store, SqlAlchemyIdentityStore):
            await self.identity_store.close()
        self.identity_store = None
