# trip_photo_core/__init__.py

from .exif import extract_metadata, extract_metadata_from_file
from .match import find_nearest_place, haversine_distance, rank_places_by_distance
from .classify import (
    build_photo_record,
    classify_photo,
    classify_trip_photos,
    reclassify_photo,
    suggest_places,
    suggest_trips,
)
from .models import (
    Coordinate,
    MatchResult,
    MetadataRecord,
    PhotoClassification,
    PhotoRecord,
    Place,
    Trip,
)

__all__ = [
    "extract_metadata",
    "extract_metadata_from_file",
    "find_nearest_place",
    "haversine_distance",
    "rank_places_by_distance",
    "build_photo_record",
    "classify_photo",
    "classify_trip_photos",
    "reclassify_photo",
    "suggest_places",
    "suggest_trips",
    "Coordinate",
    "MatchResult",
    "MetadataRecord",
    "PhotoClassification",
    "PhotoRecord",
    "Place",
    "Trip",
]
