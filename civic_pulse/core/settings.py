"""
Core settings and environment variables for Civic Pulse.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Civic Pulse API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:5174,http://localhost:5175"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON

    # In-process store for local development and tests (no Firebase credentials needed)
    USE_MOCK_DB: bool = False

    # Duplicate clustering
    DUPLICATE_RADIUS_METERS: float = 100.0
    DUPLICATE_TEXT_SIMILARITY_THRESHOLD: float = 0.0  # 0 disables the text gate
    CLUSTER_EXCLUDED_STATUSES: List[str] = ["resolved", "rejected", "closed"]

    # Listing / query defaults
    DEFAULT_SEARCH_RADIUS_METERS: int = 5000
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Spatial index cell size in degrees (~5.5 km of latitude)
    GEO_CELL_DEGREES: float = 0.05

    # Priority derivation
    ENGAGEMENT_MEDIUM_THRESHOLD: int = 5
    ENGAGEMENT_HIGH_THRESHOLD: int = 10
    ENGAGEMENT_URGENT_THRESHOLD: int = 25
    AGING_ESCALATION_DAYS: int = 7

    # Status workflow: when False any status may follow any other
    STRICT_STATUS_TRANSITIONS: bool = False

    # Reverse geocoding (fills missing city/state/pincode on new reports)
    GEOCODING_ENABLED: bool = False
    GEOCODING_USER_AGENT: str = "civic-pulse/0.1"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


# Global settings instance
settings = Settings()
