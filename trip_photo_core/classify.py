import logging
from datetime import datetime, time, timedelta
from typing import List, Optional, Sequence, Tuple

from .config import settings
from .exif import extract_metadata
from .match import find_nearest_place, rank_places_by_distance
from .models import PhotoClassification, PhotoRecord, Place, Trip
from .preview import create_preview, to_data_url

logger = logging.getLogger(__name__)


def classify_photo(
    data: bytes,
    places: Sequence[Place],
    max_distance_meters: Optional[float] = None,
) -> PhotoClassification:
    """
    Extracts metadata from an uploaded photo and matches it to a cataloged place.

    Args:
        data: Raw image bytes (the leading 64KB is enough).
        places: The user's place catalog, in display order.
        max_distance_meters: Search radius. Defaults to
                             settings.PLACE_MATCH_RADIUS_METERS.

    Returns:
        The metadata and, when the photo was taken near a place, the match.
    """
    metadata = extract_metadata(data[: settings.EXIF_HEAD_BYTES])

    match = None
    if metadata.location is not None:
        match = find_nearest_place(metadata.location, places, max_distance_meters)

    return PhotoClassification(metadata=metadata, match=match)


def build_photo_record(
    photo_id: str,
    data: bytes,
    places: Sequence[Place],
    trip_id: Optional[str] = None,
    caption: Optional[str] = None,
    url: Optional[str] = None,
    max_distance_meters: Optional[float] = None,
    now: Optional[datetime] = None,
) -> PhotoRecord:
    """
    Builds the photo entity for an upload, auto-classifying it when possible.

    Args:
        photo_id: Identifier assigned by the application.
        data: Full image bytes.
        places: The user's place catalog.
        trip_id: Trip the photo is uploaded into, if any.
        caption: Optional user caption.
        url: Where the image is stored. When omitted a JPEG preview data URL
             is generated.
        max_distance_meters: Search radius for place matching.
        now: Clock override for created_at/updated_at and the taken_at
             fallback.

    Returns:
        A new PhotoRecord.

    Raises:
        ValueError: If no url is given and the image cannot be decoded.
    """
    if now is None:
        now = datetime.now()

    if url is None:
        preview = create_preview(data)
        if preview is None:
            raise ValueError(f"Photo {photo_id} is not a decodable image")
        url = to_data_url(preview)

    classification = classify_photo(data, places, max_distance_meters)
    metadata = classification.metadata
    match = classification.match

    if match is not None:
        logger.info(
            f"Photo {photo_id} auto-classified to place {match.place_id} "
            f"({match.distance_meters:.1f}m)"
        )

    return PhotoRecord(
        id=photo_id,
        url=url,
        taken_at=metadata.timestamp or now,
        location=metadata.location,
        place_id=match.place_id if match else None,
        trip_id=trip_id,
        caption=caption.strip() if caption and caption.strip() else None,
        auto_classified=match is not None,
        classification_distance=round(match.distance_meters) if match else None,
        created_at=now,
        updated_at=now,
    )


def reclassify_photo(
    photo: PhotoRecord,
    place_id: Optional[str],
    trip_id: Optional[str],
    caption: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PhotoRecord:
    """Returns a copy of the photo manually assigned to a place and trip."""
    if now is None:
        now = datetime.now()

    return photo.model_copy(
        update={
            "place_id": place_id or None,
            "trip_id": trip_id or None,
            "caption": caption.strip() if caption and caption.strip() else None,
            # Manually reclassified
            "auto_classified": False,
            "updated_at": now,
        }
    )


def suggest_places(
    photo: PhotoRecord, places: Sequence[Place]
) -> List[Tuple[Place, Optional[float]]]:
    """
    Orders candidate places for manual reclassification.

    Args:
        photo: The photo being reclassified.
        places: The user's place catalog.

    Returns:
        (place, distance in meters) pairs nearest first, or the catalog in its
        own order with no distances when the photo has no location.
    """
    if photo.location is None:
        return [(place, None) for place in places]

    return rank_places_by_distance(photo.location, places)


def suggest_trips(
    taken_at: datetime,
    trips: Sequence[Trip],
    window_days: Optional[int] = None,
) -> List[Trip]:
    """
    Suggests trips a photo may belong to based on its capture time.

    Args:
        taken_at: When the photo was taken.
        trips: All of the user's trips.
        window_days: Days of slack before the start and after the end of a
                     trip. Defaults to settings.TRIP_SUGGESTION_WINDOW_DAYS.

    Returns:
        Trips whose widened date range covers the photo, closest start first.
    """
    if window_days is None:
        window_days = settings.TRIP_SUGGESTION_WINDOW_DAYS
    window = timedelta(days=window_days)
    taken_on = taken_at.date()

    candidates = [
        trip
        for trip in trips
        if trip.start_date - window <= taken_on <= trip.end_date + window
    ]

    def _start_gap(trip: Trip) -> float:
        start = datetime.combine(trip.start_date, time.min, tzinfo=taken_at.tzinfo)
        return abs((start - taken_at).total_seconds())

    candidates.sort(key=_start_gap)
    return candidates


def classify_trip_photos(
    photos: List[PhotoRecord],
    trip: Trip,
    places: Sequence[Place],
    max_distance_meters: Optional[float] = None,
    now: Optional[datetime] = None,
) -> List[PhotoRecord]:
    """
    Assigns located photos to the nearest of a trip's places.

    Photos without a location and photos that were placed manually are left
    unchanged. Candidate order follows the trip's own place order.

    Args:
        photos: Photo records to classify.
        trip: The trip whose places are candidates.
        places: The user's place catalog.
        max_distance_meters: Search radius. Defaults to
                             settings.TRIP_MATCH_RADIUS_METERS.
        now: Clock override for updated_at.

    Returns:
        A list of photo records in the input order.
    """
    if not photos:
        return []

    if max_distance_meters is None:
        max_distance_meters = settings.TRIP_MATCH_RADIUS_METERS
    if now is None:
        now = datetime.now()

    places_by_id = {place.id: place for place in places}
    trip_places = [places_by_id[pid] for pid in trip.place_ids if pid in places_by_id]

    result_photos = []
    matched = 0
    unlocated = 0

    for photo in photos:
        if photo.location is None:
            unlocated += 1
            result_photos.append(photo)
            continue

        if photo.place_id is not None and not photo.auto_classified:
            result_photos.append(photo)
            continue

        match = find_nearest_place(photo.location, trip_places, max_distance_meters)
        if match is None:
            result_photos.append(photo)
            continue

        matched += 1
        result_photos.append(
            photo.model_copy(
                update={
                    "place_id": match.place_id,
                    "trip_id": trip.id,
                    "auto_classified": True,
                    "classification_distance": round(match.distance_meters),
                    "updated_at": now,
                }
            )
        )

    logger.info(
        f"Classified {matched} of {len(photos)} photos into trip {trip.id} "
        f"({unlocated} without location)"
    )

    return result_photos
