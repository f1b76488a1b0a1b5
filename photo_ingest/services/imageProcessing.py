import io
from dataclasses import dataclass
from datetime import datetime, timezone
from PIL import Image as PILImage, UnidentifiedImageError
import exifread
from ..errors import InvalidImageError
from ..utils.logging import logger

EXIF_CAPTURE_TAGS = ("EXIF DateTimeOriginal", "EXIF DateTimeDigitized")
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# linear scale factor per derived tier
VARIANT_SCALES = {"medium": 2, "small": 4}


@dataclass(frozen=True)
class DecodedImage:
    image: PILImage.Image
    width: int
    height: int
    format: str
    content_type: str

    @property
    def aspect_ratio(self):
        return self.width / self.height


@dataclass(frozen=True)
class EncodedVariant:
    quality: str
    data: bytes
    width: int
    height: int
    compression_quality: int
    content_type: str = "image/jpeg"


def decode_image(data):
    try:
        img = PILImage.open(io.BytesIO(data))
        img.load()
    except UnidentifiedImageError as e:
        logger.error("Unidentified image payload")
        raise InvalidImageError("Unsupported or corrupt image") from e
    except Exception as e:
        logger.warning(f"Image decode failed: {e}")
        raise InvalidImageError(f"Image could not be decoded: {e}") from e
    fmt = img.format or "JPEG"
    return DecodedImage(
        image=img,
        width=img.width,
        height=img.height,
        format=fmt,
        content_type=PILImage.MIME.get(fmt, "application/octet-stream"),
    )


def extract_exif(data):
    """Raw capture metadata as ``{tag: value}`` strings, empty when absent."""
    try:
        tags = exifread.process_file(io.BytesIO(data), details=False)
        return {str(k): str(v) for k, v in tags.items()} if tags else {}
    except Exception as e:
        logger.warning(f"EXIF extraction failed: {e}")
        return {}


def parse_exif_datetime(value):
    try:
        return datetime.strptime(value.strip(), EXIF_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except (ValueError, AttributeError):
        return None


def parse_last_modified(value):
    """Client clock in epoch milliseconds; None if unusable."""
    try:
        return datetime.fromtimestamp(int(str(value).strip()) / 1000, timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def resolve_capture_time(exif, last_modified, now=None):
    """Embedded capture time, then the client's last-modified, then now."""
    for tag in EXIF_CAPTURE_TAGS:
        if tag in exif:
            captured = parse_exif_datetime(exif[tag])
            if captured:
                return captured
            logger.warning(f"Ignoring malformed {tag}: {exif[tag]!r}")

    captured = parse_last_modified(last_modified)
    if captured:
        return captured
    if last_modified:
        logger.warning(f"Ignoring malformed last_modified: {last_modified!r}")
    return now or datetime.now(timezone.utc)


def variant_dimensions(width, height, quality):
    scale = VARIANT_SCALES[quality]
    return max(1, width // scale), max(1, height // scale)


def encode_variant(pil_img, quality, compression_quality):
    width, height = variant_dimensions(pil_img.width, pil_img.height, quality)
    img_copy = pil_img.resize((width, height), PILImage.Resampling.LANCZOS)
    if img_copy.mode not in ("RGB", "L"):
        img_copy = img_copy.convert("RGB")
    buf = io.BytesIO()
    img_copy.save(buf, format="JPEG", quality=compression_quality, optimize=True)
    logger.debug(f"Encoded {quality} variant {width}x{height} q={compression_quality}")
    return EncodedVariant(
        quality=quality,
        data=buf.getvalue(),
        width=width,
        height=height,
        compression_quality=compression_quality,
    )


def generate_variants(data, qualities):
    """Decode the original and build every derived tier.

    ``qualities`` maps tier name to JPEG quality, e.g. ``{"medium": 80, "small": 80}``.
    """
    decoded = decode_image(data)
    return [encode_variant(decoded.image, tier, q) for tier, q in qualities.items()]
