import base64
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .config import settings

logger = logging.getLogger(__name__)

JPEG_DATA_URL_PREFIX = "data:image/jpeg;base64,"


def create_preview(
    data: bytes, size: Optional[Tuple[int, int]] = None
) -> Optional[bytes]:
    """
    Create a downscaled JPEG preview of an uploaded image.

    Args:
        data: Source image bytes (any format Pillow can decode).
        size: Bounding box (width, height). Defaults to settings.PREVIEW_SIZE

    Returns:
        JPEG bytes, or None if the image could not be decoded
    """
    if size is None:
        size = settings.PREVIEW_SIZE

    try:
        with Image.open(BytesIO(data)) as img:
            # Handle EXIF orientation
            img = ImageOps.exif_transpose(img)

            # Flatten transparency onto white
            if img.mode in ("RGBA", "LA", "P"):
                background = Image.new("RGB", img.size, (255, 255, 255))
                if img.mode == "P":
                    img = img.convert("RGBA")
                background.paste(
                    img, mask=img.split()[-1] if img.mode in ("RGBA", "LA") else None
                )
                img = background
            elif img.mode != "RGB":
                img = img.convert("RGB")

            img.thumbnail(size, Image.Resampling.LANCZOS)

            output = BytesIO()
            img.save(output, "JPEG", quality=settings.PREVIEW_QUALITY, optimize=True)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.warning(f"Failed to create preview: {e}")
        return None

    preview = output.getvalue()
    logger.debug(f"Created {len(preview)} byte preview from {len(data)} byte upload")
    return preview


def to_data_url(jpeg_bytes: bytes) -> str:
    """Encode JPEG bytes as a data URL."""
    return JPEG_DATA_URL_PREFIX + base64.b64encode(jpeg_bytes).decode("ascii")
