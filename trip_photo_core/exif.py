import logging
import struct
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Set, Union

from pydantic import ValidationError

from .config import settings
from .models import Coordinate, MetadataRecord

logger = logging.getLogger(__name__)

# JPEG markers
JPEG_SOI = b"\xff\xd8"
MARKER_APP1 = 0xFFE1
MARKER_SOS = 0xFFDA
MARKER_EOI = 0xFFD9
EXIF_IDENTIFIER = b"Exif"
TIFF_HEADER_OFFSET = 10  # marker(2) + length(2) + "Exif\0\0"(6)
TIFF_MAGIC = 42

# IFD0 / Exif IFD tags
TAG_DATETIME = 0x0132
TAG_DATETIME_ORIGINAL = 0x9003
TAG_DATETIME_DIGITIZED = 0x9004
TAG_EXIF_IFD_POINTER = 0x8769
TAG_GPS_IFD_POINTER = 0x8825
TIMESTAMP_TAGS = {TAG_DATETIME, TAG_DATETIME_ORIGINAL, TAG_DATETIME_DIGITIZED}

# GPS IFD tags
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4

# Field types
TYPE_ASCII = 2
TYPE_RATIONAL = 5

IFD_ENTRY_SIZE = 12
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class ExifFormatError(ValueError):
    """The EXIF structure is truncated or malformed."""


class _IfdEntry(NamedTuple):
    tag: int
    type: int
    count: int
    value: int  # inline value or offset, depending on size
    value_position: int  # where the inline value starts


class _TiffReader:
    """Bounds-checked reads with offsets relative to the TIFF header."""

    def __init__(self, data: bytes, base: int, byte_order: str):
        self.data = data
        self.base = base
        self.byte_order = byte_order

    def _unpack(self, fmt: str, offset: int) -> int:
        position = self.base + offset
        size = struct.calcsize(fmt)
        if position + size > len(self.data):
            raise ExifFormatError(
                f"read of {size} bytes at offset {offset} runs past end of buffer"
            )
        return struct.unpack_from(self.byte_order + fmt, self.data, position)[0]

    def u16(self, offset: int) -> int:
        return self._unpack("H", offset)

    def u32(self, offset: int) -> int:
        return self._unpack("I", offset)

    def raw(self, offset: int, length: int) -> bytes:
        position = self.base + offset
        if position + length > len(self.data):
            raise ExifFormatError(
                f"read of {length} bytes at offset {offset} runs past end of buffer"
            )
        return self.data[position : position + length]

    def rational(self, offset: int) -> Optional[float]:
        """Unsigned numerator/denominator pair; None when the denominator is 0."""
        numerator = self.u32(offset)
        denominator = self.u32(offset + 4)
        if denominator == 0:
            return None
        return numerator / denominator

    def entry(self, position: int) -> _IfdEntry:
        return _IfdEntry(
            tag=self.u16(position),
            type=self.u16(position + 2),
            count=self.u32(position + 4),
            value=self.u32(position + 8),
            value_position=position + 8,
        )


def _find_tiff_header(data: bytes) -> Optional[int]:
    """Scan JPEG segments for the first Exif APP1 block and return its TIFF start."""
    offset = 2
    while offset + 4 <= len(data):
        marker, length = struct.unpack_from(">HH", data, offset)

        if marker >> 8 != 0xFF:
            logger.debug(f"Lost JPEG marker sync at offset {offset}")
            return None
        if marker in (MARKER_SOS, MARKER_EOI):
            # Entropy-coded data follows; metadata segments are all before it
            return None
        if length < 2:
            logger.debug(f"Invalid segment length {length} at offset {offset}")
            return None

        if marker == MARKER_APP1 and data[offset + 4 : offset + 8] == EXIF_IDENTIFIER:
            return offset + TIFF_HEADER_OFFSET

        # Non-Exif APP1 (e.g. XMP) and every other segment are skipped
        offset += length + 2

    return None


def _read_ascii(reader: _TiffReader, entry: _IfdEntry) -> Optional[str]:
    if entry.type != TYPE_ASCII or entry.count == 0:
        return None

    offset = entry.value_position if entry.count <= 4 else entry.value
    raw = reader.raw(offset, entry.count)
    try:
        return raw.split(b"\x00", 1)[0].decode("ascii")
    except UnicodeDecodeError:
        return None


def _read_timestamp(reader: _TiffReader, entry: _IfdEntry) -> Optional[datetime]:
    try:
        text = _read_ascii(reader, entry)
    except ExifFormatError as e:
        logger.debug(f"Unreadable date tag 0x{entry.tag:04x}: {e}")
        return None
    if not text:
        return None

    try:
        # Common EXIF format: 'YYYY:MM:DD HH:MM:SS'
        return datetime.strptime(text.strip(), EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.debug(f"Could not parse EXIF date string: {text!r}")
        return None


def _read_dms(reader: _TiffReader, entry: _IfdEntry) -> Optional[float]:
    """Decode three rationals (degrees, minutes, seconds) into decimal degrees."""
    if entry.type != TYPE_RATIONAL or entry.count != 3:
        logger.debug(
            f"Unexpected GPS coordinate layout: type={entry.type} count={entry.count}"
        )
        return None

    degrees = reader.rational(entry.value)
    minutes = reader.rational(entry.value + 8)
    seconds = reader.rational(entry.value + 16)
    if degrees is None or minutes is None or seconds is None:
        return None

    return degrees + minutes / 60 + seconds / 3600


def _parse_gps_ifd(
    reader: _TiffReader, gps_offset: int, visited: Set[int]
) -> Optional[Coordinate]:
    if gps_offset in visited:
        return None
    visited.add(gps_offset)

    lat_ref: Optional[str] = None
    lng_ref: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    try:
        entry_count = reader.u16(gps_offset)
        for index in range(entry_count):
            entry = reader.entry(gps_offset + 2 + index * IFD_ENTRY_SIZE)

            if entry.tag == GPS_LATITUDE_REF:
                lat_ref = _read_ascii(reader, entry)
            elif entry.tag == GPS_LATITUDE:
                lat = _read_dms(reader, entry)
            elif entry.tag == GPS_LONGITUDE_REF:
                lng_ref = _read_ascii(reader, entry)
            elif entry.tag == GPS_LONGITUDE:
                lng = _read_dms(reader, entry)
    except ExifFormatError as e:
        logger.debug(f"Corrupt GPS IFD at offset {gps_offset}: {e}")

    # Only one axis is as good as none
    if lat is None or lng is None:
        return None

    if lat_ref and lat_ref.upper() == "S":
        lat = -lat
    if lng_ref and lng_ref.upper() == "W":
        lng = -lng

    try:
        return Coordinate(lat=lat, lng=lng)
    except ValidationError:
        logger.warning(f"Discarding out-of-range GPS coordinate: lat={lat}, lng={lng}")
        return None


def _parse_ifd(
    reader: _TiffReader,
    ifd_offset: int,
    result: Dict[str, Any],
    visited: Set[int],
    nested: bool = False,
) -> int:
    """
    Parse one directory into ``result`` and return the next-IFD offset.

    Sub-IFD pointers are only followed from top-level directories; a nested
    directory (the Exif IFD) ignores them.

    Raises ExifFormatError when the directory itself runs off the buffer;
    whatever was decoded before that point stays in ``result``.
    """
    entry_count = reader.u16(ifd_offset)

    for index in range(entry_count):
        entry = reader.entry(ifd_offset + 2 + index * IFD_ENTRY_SIZE)

        if nested and entry.tag in (TAG_GPS_IFD_POINTER, TAG_EXIF_IFD_POINTER):
            continue

        if entry.tag == TAG_GPS_IFD_POINTER:
            location = _parse_gps_ifd(reader, entry.value, visited)
            if location is not None and result["location"] is None:
                result["location"] = location

        elif entry.tag == TAG_EXIF_IFD_POINTER:
            if entry.value in visited:
                continue
            visited.add(entry.value)
            try:
                _parse_ifd(reader, entry.value, result, visited, nested=True)
            except ExifFormatError as e:
                logger.debug(f"Corrupt Exif IFD at offset {entry.value}: {e}")

        elif entry.tag in TIMESTAMP_TAGS and result["timestamp"] is None:
            # First parsed timestamp wins, in scan order
            result["timestamp"] = _read_timestamp(reader, entry)

    return reader.u32(ifd_offset + 2 + entry_count * IFD_ENTRY_SIZE)


def _parse_tiff(data: bytes, tiff_start: int, result: Dict[str, Any]) -> None:
    byte_order_mark = data[tiff_start : tiff_start + 2]
    if byte_order_mark == b"II":
        byte_order = "<"
    elif byte_order_mark == b"MM":
        byte_order = ">"
    else:
        logger.debug(f"Unknown TIFF byte order mark: {byte_order_mark!r}")
        return

    reader = _TiffReader(data, tiff_start, byte_order)
    try:
        if reader.u16(2) != TIFF_MAGIC:
            logger.debug("TIFF header version sentinel is not 42")
            return
        ifd_offset = reader.u32(4)
    except ExifFormatError as e:
        logger.debug(f"Truncated TIFF header: {e}")
        return

    visited: Set[int] = set()
    while ifd_offset:
        if ifd_offset in visited:
            logger.debug(f"IFD chain loops back to offset {ifd_offset}")
            break
        visited.add(ifd_offset)

        try:
            ifd_offset = _parse_ifd(reader, ifd_offset, result, visited)
        except ExifFormatError as e:
            logger.debug(f"Stopped parsing IFD chain: {e}")
            break


def extract_metadata(data: bytes) -> MetadataRecord:
    """
    Extracts GPS location and capture timestamp from JPEG bytes.

    Only the leading part of the file is needed (see
    ``settings.EXIF_HEAD_BYTES``). Input that is not a JPEG, carries no EXIF
    block, or is truncated or corrupt yields an empty or partial record; this
    function does not raise for malformed data.

    Args:
        data: Raw image bytes.

    Returns:
        A MetadataRecord with whichever fields could be decoded.
    """
    if not isinstance(data, bytes):
        data = bytes(data)

    if data[:2] != JPEG_SOI:
        return MetadataRecord()

    tiff_start = _find_tiff_header(data)
    if tiff_start is None:
        return MetadataRecord()

    result: Dict[str, Any] = {"location": None, "timestamp": None}
    _parse_tiff(data, tiff_start, result)

    return MetadataRecord(**result)


def extract_metadata_from_file(
    file_path: Union[str, Path], head_size: Optional[int] = None
) -> MetadataRecord:
    """
    Reads the head of an image file and extracts its metadata.

    Args:
        file_path: Path to the image.
        head_size: Number of leading bytes to read. Defaults to
                   settings.EXIF_HEAD_BYTES.

    Returns:
        The extracted MetadataRecord.
    """
    if head_size is None:
        head_size = settings.EXIF_HEAD_BYTES

    file_path = Path(file_path)
    with file_path.open("rb") as f:
        head = f.read(head_size)

    record = extract_metadata(head)
    if record.is_empty:
        logger.debug(f"No EXIF location or timestamp in {file_path.name}")
    return record
