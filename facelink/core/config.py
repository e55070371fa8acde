"""Configuration settings for the face matching engine."""
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    The similarity weights and thresholds below were tuned empirically and are
    kept here so they can be recalibrated against a labelled validation set
    without touching the matching code.

    Attributes:
        QUALITY_THRESHOLD: Minimum composite image quality accepted for extraction (0-1)
        MATCH_CONFIDENCE_THRESHOLD: Minimum trust-weighted confidence for a match (0-1)
        GROUPING_THRESHOLD: Minimum similarity for two faces to share a group (0-1)
        SIMILARITY_WEIGHTS: Weights for cosine, euclidean, manhattan, pearson,
            mahalanobis, jaccard, chebyshev and canberra similarities
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",  # No prefix for environment variables
        env_nested_delimiter="__"  # Use double underscore for nested settings
    )

    # Core Settings
    PROJECT_NAME: str = "FaceLink"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"

    # Image quality gate
    QUALITY_THRESHOLD: float = 0.7
    LOW_BRIGHTNESS: float = 0.3
    MID_BRIGHTNESS: float = 0.5
    LOW_CONTRAST: float = 0.3
    MID_CONTRAST: float = 0.5
    BLUR_VARIANCE_THRESHOLD: float = 100.0  # Laplacian variance on 0-255 luma

    # Embedding model
    MODEL_NAME: str = "buffalo_l"
    MODEL_CACHE_DIR: str = ".model_cache"
    MODEL_INPUT_SIZE: int = 160  # Used when the model does not report its own input size
    DETECTION_SIZE: int = 640
    MIN_FACE_CONFIDENCE: float = 0.5

    # Face cropping
    FACE_PADDING: float = 0.2
    CENTER_CROP_RATIO: float = 0.6
    MAX_IMAGE_PIXELS: int = 4096 * 4096

    # Similarity scoring
    SIMILARITY_WEIGHTS: List[float] = Field(
        default_factory=lambda: [0.25, 0.15, 0.10, 0.10, 0.15, 0.10, 0.05, 0.10]
    )
    SIGMOID_STEEPNESS: float = 8.0

    # Matching
    MATCH_CONFIDENCE_THRESHOLD: float = 0.25
    GROUPING_THRESHOLD: float = 0.6
    PEER_CONTACT_THRESHOLD: float = 0.7
    AUTO_SHARE_THRESHOLD: float = 0.7
    RECOGNIZED_FACE_MIN_CONFIDENCE: float = 0.3

    # Trust scores per tier
    TRUST_SELF_PROFILE: float = 1.0
    TRUST_CONTACT_FAMILY: float = 0.9
    TRUST_CONTACT: float = 0.7
    TRUST_PEER: float = 0.5

    # Scan Settings
    SCAN_BATCH_SIZE: int = 20
    GALLERY_SCAN_LIMIT: int = 100
    MAX_SCAN_WORKERS: int = 0  # 0 means one worker per physical core

    # Identity store
    DATABASE_URL: str = "sqlite+aiosqlite:///./facelink.db"

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    @field_validator("SIMILARITY_WEIGHTS")
    @classmethod
    def validate_weights(cls, v: List[float]) -> List[float]:
        """Eight weights are required, one per component metric."""
        if len(v) != 8:
            raise ValueError("SIMILARITY_WEIGHTS must contain exactly 8 values")
        return v


settings = Settings()
