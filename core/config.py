"""
MOOMA Configuration

Environment variables and application settings.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Mooma"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Firebase
    FIREBASE_PROJECT_ID: str = "mooma-app"
    FIREBASE_CREDENTIALS_PATH: str = "service-account.json"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Pose Landmarker
    POSE_MODEL_PATH: str = "ml_models/pose_landmarker_lite.task"
    POSE_MIN_DETECTION_CONFIDENCE: float = 0.5
    POSE_MIN_TRACKING_CONFIDENCE: float = 0.5

    # Exercise tracking
    SMOOTHING_WINDOW: int = 5
    REP_COOLDOWN_MS: int = 800
    MIN_POSE_CONFIDENCE: float = 0.4
    BREATHING_TICK_SECONDS: float = 0.1
    ACCURACY_FALLBACK: float = 0.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
