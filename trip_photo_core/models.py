from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Coordinate(BaseModel):
    """A WGS84 latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class Place(BaseModel):
    """A cataloged place. Never mutated by the classifier."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class MetadataRecord(BaseModel):
    """
    Location and capture time recovered from an image's EXIF block.

    Both fields are optional; an empty record is the normal outcome for
    non-JPEG input or images whose metadata has been stripped.
    """

    model_config = ConfigDict(frozen=True)

    location: Optional[Coordinate] = None
    timestamp: Optional[datetime] = None  # naive, camera local time

    @property
    def is_empty(self) -> bool:
        return self.location is None and self.timestamp is None


class MatchResult(BaseModel):
    """The nearest place within the search radius and its distance."""

    model_config = ConfigDict(frozen=True)

    place: Place
    distance_meters: float = Field(ge=0)

    @property
    def place_id(self) -> str:
        return self.place.id


class PhotoClassification(BaseModel):
    """Extracted metadata plus the auto-classified place, if any."""

    model_config = ConfigDict(frozen=True)

    metadata: MetadataRecord
    match: Optional[MatchResult] = None

    @property
    def auto_classified(self) -> bool:
        return self.match is not None


class Trip(BaseModel):
    """A trip and the places planned for it."""

    id: str
    name: str
    start_date: date
    end_date: date
    place_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self) -> "Trip":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class PhotoRecord(BaseModel):
    """Photo entity as stored by the application."""

    id: str
    url: str  # data URL or remote URL
    taken_at: datetime
    location: Optional[Coordinate] = None
    place_id: Optional[str] = None
    trip_id: Optional[str] = None
    caption: Optional[str] = None

    # Classification
    auto_classified: bool = False
    classification_distance: Optional[int] = None  # meters

    # Timestamps
    created_at: datetime
    updated_at: datetime
