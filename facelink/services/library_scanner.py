"""
Batch scanning of the local photo library.

Photos are processed most recent first in chunks of SCAN_BATCH_SIZE. Each
chunk runs on a bounded thread pool, and a stop request takes effect at the
next chunk boundary. One failing photo is logged and skipped.

Example:
    ```python
    scanner = LibraryScanner(recognition, grouping, capture_store)
    await scanner.scan_library(photos)
    groups = await scanner.scan_for_groups(photos)
    ```
"""
import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, TypeVar

import psutil

from facelink.core.config import settings
from facelink.core.exceptions import FaceLinkError, ScanInProgressError
from facelink.core.logging import get_logger
from facelink.domain.entities.face import FaceCapture, LibraryPhoto
from facelink.domain.value_objects.recognition import FaceCluster
from facelink.services.capture_store import FaceCaptureStore
from facelink.services.grouping import GroupingEngine
from facelink.services.photo_recognition import PhotoRecognitionService

logger = get_logger(__name__)

T = TypeVar("T")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def default_worker_count() -> int:
    """Physical core count, or the logical count when it is unavailable."""
    return psutil.cpu_count(logical=False) or psutil.cpu_count() or 1


def _capture_time(photo: LibraryPhoto) -> datetime:
    if photo.captured_at is None:
        return _OLDEST
    if photo.captured_at.tzinfo is None:
        return photo.captured_at.replace(tzinfo=timezone.utc)
    return photo.captured_at


def order_photos(photos: Sequence[LibraryPhoto]) -> List[LibraryPhoto]:
    """Most recent first; undated photos last, in their given order."""
    return sorted(photos, key=_capture_time, reverse=True)


class LibraryScanner:
    """Runs recognition and grouping scans over library photos.

    Attributes:
        is_scanning: A scan is running
        processed: Photos handled by the current or last scan
        total: Photos in the current or last scan
    """

    def __init__(
        self,
        recognition: PhotoRecognitionService,
        grouping: GroupingEngine,
        capture_store: FaceCaptureStore,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.recognition = recognition
        self.grouping = grouping
        self.capture_store = capture_store
        self.batch_size = batch_size or settings.SCAN_BATCH_SIZE
        self.max_workers = max_workers or settings.MAX_SCAN_WORKERS or default_worker_count()
        self.is_scanning = False
        self.processed = 0
        self.total = 0
        self._cancel = threading.Event()
        self._process = psutil.Process()

    def stop(self) -> None:
        """Request cancellation; the running scan stops before its next chunk."""
        if self.is_scanning:
            logger.info("Scan stop requested", processed=self.processed, total=self.total)
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _begin(self, total: int) -> None:
        if self.is_scanning:
            raise ScanInProgressError("A library scan is already running")
        self.is_scanning = True
        self._cancel.clear()
        self.processed = 0
        self.total = total

    def _log_resources(self, chunk: int) -> None:
        memory = self._process.memory_info()
        logger.debug(
            "Scan chunk finished",
            chunk=chunk,
            processed=self.processed,
            total=self.total,
            rss_mb=round(memory.rss / (1024 * 1024), 1),
            cpu_percent=self._process.cpu_percent(interval=None),
        )

    def _chunks(self, photos: List[LibraryPhoto]) -> List[List[LibraryPhoto]]:
        return [photos[i:i + self.batch_size] for i in range(0, len(photos), self.batch_size)]

    @staticmethod
    def _too_large(photo: LibraryPhoto) -> bool:
        height, width = photo.image.shape[:2]
        return height * width > settings.MAX_IMAGE_PIXELS

    async def _run_chunk(
        self,
        executor: ThreadPoolExecutor,
        chunk: Sequence[LibraryPhoto],
        work: Callable[[LibraryPhoto], T],
    ) -> List[Optional[T]]:
        loop = asyncio.get_running_loop()
        futures = [loop.run_in_executor(executor, work, photo) for photo in chunk]
        results = await asyncio.gather(*futures, return_exceptions=True)

        outcomes: List[Optional[T]] = []
        for photo, result in zip(chunk, results):
            if isinstance(result, FaceLinkError):
                logger.warning("Skipping photo", photo_id=photo.photo_id, error=str(result))
                outcomes.append(None)
            elif isinstance(result, Exception):
                logger.error(
                    "Unexpected error while scanning photo",
                    photo_id=photo.photo_id,
                    error=str(result),
                    exc_info=result,
                )
                outcomes.append(None)
            else:
                outcomes.append(result)
        return outcomes

    async def scan_library(self, photos: Sequence[LibraryPhoto]) -> int:
        """
        Recognise faces in every photo and store each photo with its labels.

        Args:
            photos: Library photos, in any order

        Returns:
            Number of photos stored

        Raises:
            ScanInProgressError: If another scan is running
        """
        ordered = [photo for photo in order_photos(photos) if not self._too_large(photo)]
        if len(ordered) < len(photos):
            logger.warning("Skipping oversized photos", skipped=len(photos) - len(ordered))

        self._begin(len(ordered))
        stored = 0
        logger.info("Starting library scan", photos=len(ordered), workers=self.max_workers)
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                for index, chunk in enumerate(self._chunks(ordered)):
                    if self.cancelled:
                        logger.info("Library scan cancelled", processed=self.processed, total=self.total)
                        break

                    labels = await self._run_chunk(
                        executor,
                        chunk,
                        lambda photo: self.recognition.label_photo(photo.image, photo_id=photo.photo_id)[0],
                    )
                    for photo, recognized in zip(chunk, labels):
                        self.processed += 1
                        if recognized is None:
                            continue
                        try:
                            await self.recognition.save(photo.image, recognized)
                            stored += 1
                        except Exception as e:
                            logger.error(
                                "Failed to store scanned photo",
                                photo_id=photo.photo_id,
                                error=str(e),
                                exc_info=True,
                            )
                    self._log_resources(index)
        finally:
            self.is_scanning = False

        logger.info("Library scan finished", stored=stored, processed=self.processed, total=self.total)
        return stored

    async def scan_for_groups(
        self,
        photos: Sequence[LibraryPhoto],
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[FaceCluster]:
        """
        Find groups of similar faces among the most recent photos.

        The groups found replace the content of the capture store.

        Args:
            photos: Library photos, in any order
            threshold: Grouping threshold (defaults to settings)
            limit: Number of most recent photos to scan (defaults to settings)

        Returns:
            Face groups with two or more members

        Raises:
            ScanInProgressError: If another scan is running
        """
        limit = limit or settings.GALLERY_SCAN_LIMIT
        ordered = [
            photo for photo in order_photos(photos)[:limit]
            if not self._too_large(photo)
        ]

        self._begin(len(ordered))
        captures: List[FaceCapture] = []
        logger.info("Starting face grouping scan", photos=len(ordered), workers=self.max_workers)
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                for index, chunk in enumerate(self._chunks(ordered)):
                    if self.cancelled:
                        logger.info("Grouping scan cancelled", processed=self.processed, total=self.total)
                        break

                    results = await self._run_chunk(
                        executor,
                        chunk,
                        lambda photo: self.recognition.extract_faces(
                            photo.image,
                            photo_id=photo.photo_id,
                            captured_at=photo.captured_at,
                        ),
                    )
                    for faces in results:
                        captures.extend(faces or [])
                    self.processed += len(chunk)
                    self._log_resources(index)
        finally:
            self.is_scanning = False

        clusters = self.grouping.cluster(captures, threshold)
        self.capture_store.replace(clusters)
        logger.info("Face grouping scan finished", faces=len(captures), groups=len(clusters))
        return clusters
