from datetime import date
from io import BytesIO

import piexif
import pytest
from PIL import Image

from trip_photo_core.models import Place, Trip
from tests.factories import dms_rationals


@pytest.fixture
def make_gps_jpeg():
    """Build a real JPEG (Pillow) carrying an EXIF block written by piexif."""

    def _make(
        lat=None,
        lng=None,
        date_time=None,
        date_time_original=None,
        size=(64, 48),
    ) -> bytes:
        zeroth = {piexif.ImageIFD.Make: b"TestCam"}
        if date_time:
            zeroth[piexif.ImageIFD.DateTime] = date_time.encode("ascii")

        exif = {}
        if date_time_original:
            exif[piexif.ExifIFD.DateTimeOriginal] = date_time_original.encode("ascii")

        gps = {}
        if lat is not None and lng is not None:
            gps = {
                piexif.GPSIFD.GPSVersionID: (2, 2, 0, 0),
                piexif.GPSIFD.GPSLatitudeRef: b"N" if lat >= 0 else b"S",
                piexif.GPSIFD.GPSLatitude: tuple(dms_rationals(lat)),
                piexif.GPSIFD.GPSLongitudeRef: b"E" if lng >= 0 else b"W",
                piexif.GPSIFD.GPSLongitude: tuple(dms_rationals(lng)),
            }

        exif_bytes = piexif.dump(
            {"0th": zeroth, "Exif": exif, "GPS": gps, "1st": {}, "thumbnail": None}
        )

        buffer = BytesIO()
        Image.new("RGB", size, color="red").save(buffer, "JPEG", exif=exif_bytes)
        return buffer.getvalue()

    return _make


@pytest.fixture
def plain_jpeg() -> bytes:
    """A JPEG without any EXIF block."""
    buffer = BytesIO()
    Image.new("RGB", (32, 32), color="blue").save(buffer, "JPEG")
    return buffer.getvalue()


@pytest.fixture
def tokyo_places():
    return [
        Place(id="A", name="Tokyo Station", lat=35.6812, lng=139.7671),
        Place(id="B", name="Shibakoen", lat=35.6586, lng=139.7454),
    ]


@pytest.fixture
def kyoto_trip():
    return Trip(
        id="trip-kyoto",
        name="Kyoto",
        start_date=date(2025, 4, 1),
        end_date=date(2025, 4, 5),
        place_ids=["kiyomizu", "fushimi"],
    )
