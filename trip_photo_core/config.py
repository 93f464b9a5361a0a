from typing import Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Photo classification settings."""

    model_config = SettingsConfigDict(
        env_prefix="TRIP_PHOTO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # EXIF extraction - the APP1 block sits near the start of a JPEG
    EXIF_HEAD_BYTES: int = 64 * 1024  # 64KB

    # Place matching radii
    PLACE_MATCH_RADIUS_METERS: float = 200.0  # "photo at a cataloged place"
    TRIP_MATCH_RADIUS_METERS: float = 500.0  # "photo inside this trip's places"

    # Trip suggestions for manual reclassification
    TRIP_SUGGESTION_WINDOW_DAYS: int = 7

    # Preview settings
    PREVIEW_SIZE: Tuple[int, int] = (1024, 1024)
    PREVIEW_QUALITY: int = 80


settings = Settings()
