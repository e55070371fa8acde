"""Owner of the local user's profile."""
import threading
from typing import Any, Callable, List, Optional

from facelink.core.logging import get_logger
from facelink.domain.entities.people import UserProfile

logger = get_logger(__name__)

ProfileListener = Callable[[UserProfile], None]

_PROFILE_FIELDS = frozenset(UserProfile.model_fields)


class UserProfileStore:
    """Holds the current UserProfile and notifies subscribers on change.

    Constructed once by the service container and passed to the components
    that need the local identity.
    """

    def __init__(self, profile: Optional[UserProfile] = None) -> None:
        self._profile = profile or UserProfile()
        self._lock = threading.Lock()
        self._listeners: List[ProfileListener] = []

    @property
    def profile(self) -> UserProfile:
        with self._lock:
            return self._profile

    def subscribe(self, listener: ProfileListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def update_profile(self, **changes: Any) -> UserProfile:
        """
        Replace the given profile fields.

        Args:
            **changes: UserProfile field values

        Returns:
            The updated profile

        Raises:
            ValueError: If a field name is unknown
        """
        unknown = set(changes) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        with self._lock:
            data = self._profile.model_dump()
            data.update(changes)
            self._profile = UserProfile(**data)
            profile = self._profile
            listeners = list(self._listeners)

        logger.info("Updated user profile", fields=sorted(changes))
        for listener in listeners:
            try:
                listener(profile)
            except Exception as e:
                logger.error("Profile listener failed", error=str(e), exc_info=True)
        return profile
