"""
Transform worker — raw bytes in, delivery variants out.

This is the CPU-bound step. transform_media() is a plain top-level
function taking and returning picklable values, so the dispatcher can
ship it to a process pool (worker/pool.py) where a malformed or hostile
file can burn a core, or crash, without touching the dispatcher's own
event loop.

Image path — four tiers, each in two encodings:

    tier        max width   quality
    thumbnail   200         60
    small       800         80
    regular     1080        85
    original    (source)    85

    modern = WebP, legacy = JPEG (what every browser can show)

Widths are upper bounds: smaller sources are never enlarged. Resizing
keeps aspect ratio. EXIF orientation is applied first so portrait photos
come out upright, and re-encoding drops the embedded metadata.

Video path — the raw container passes through untouched as the
"original" variant. Reclassified animations also get poster frames
(thumbnail/small/regular) rendered from their first frame.

Every failure — undecodable bytes, exotic colour modes, decompression
bombs — leaves this module as TransformError and nothing else.
"""

import io
from dataclasses import dataclass, field

from PIL import Image, ImageOps

from models.enums import Encoding, MediaKind, SizeTier
from models.errors import TransformError
from processing.classify import MIME_TO_EXTENSION


@dataclass(frozen=True)
class Tier:
    size_tier: SizeTier
    max_width: int | None
    quality: int


@dataclass(frozen=True)
class OutputFormat:
    encoding: Encoding
    pil_format: str
    extension: str
    content_type: str


TIERS = (
    Tier(SizeTier.THUMBNAIL, 200, 60),
    Tier(SizeTier.SMALL, 800, 80),
    Tier(SizeTier.REGULAR, 1080, 85),
    Tier(SizeTier.ORIGINAL, None, 85),
)

POSTER_TIERS = TIERS[:3]

FORMATS = (
    OutputFormat(Encoding.MODERN, "WEBP", "webp", "image/webp"),
    OutputFormat(Encoding.LEGACY, "JPEG", "jpg", "image/jpeg"),
)

# Colour modes Pillow can bring to RGB/RGBA without guessing
SUPPORTED_MODES = {"1", "L", "LA", "P", "PA", "RGB", "RGBA", "RGBX", "RGBa", "CMYK", "YCbCr"}


@dataclass
class EncodedVariant:
    size_tier: SizeTier
    encoding: Encoding
    content_type: str
    extension: str
    width: int
    height: int
    data: bytes = field(repr=False)


@dataclass
class TransformResult:
    kind: MediaKind
    reclassified: bool
    variants: list[EncodedVariant]


def transform_media(
    data: bytes,
    mime_type: str,
    kind: MediaKind,
    max_pixels: int = 100_000_000,
) -> TransformResult:
    """Entry point executed inside the transform pool."""
    if not data:
        raise TransformError("Empty upload")
    try:
        if kind == MediaKind.VIDEO:
            variants = _video_variants(data, mime_type, max_pixels)
        else:
            variants = _image_variants(data, max_pixels)
    except TransformError:
        raise
    except Exception as e:
        # Pillow signals bad input with a zoo of exception types
        raise TransformError(f"Could not process media: {type(e).__name__}: {e}") from None

    return TransformResult(
        kind=kind,
        reclassified=kind == MediaKind.VIDEO and mime_type.startswith("image/"),
        variants=variants,
    )


# ── Image path ──────────────────────────────────────────────────

def _image_variants(data: bytes, max_pixels: int) -> list[EncodedVariant]:
    with Image.open(io.BytesIO(data)) as img:
        _check_dimensions(img, max_pixels)
        frame = _prepare(img)
    return _render(frame, TIERS)


# ── Video path ──────────────────────────────────────────────────

def _video_variants(data: bytes, mime_type: str, max_pixels: int) -> list[EncodedVariant]:
    width = height = 0
    posters: list[EncodedVariant] = []

    if mime_type.startswith("image/"):
        # Reclassified animation: Pillow can still read its first frame
        with Image.open(io.BytesIO(data)) as img:
            _check_dimensions(img, max_pixels)
            frame = _prepare(img)
        width, height = frame.size
        posters = _render(frame, POSTER_TIERS)

    original = EncodedVariant(
        size_tier=SizeTier.ORIGINAL,
        encoding=Encoding.LEGACY,
        content_type=mime_type,
        extension=MIME_TO_EXTENSION.get(mime_type, "bin"),
        width=width,
        height=height,
        data=data,
    )
    return posters + [original]


# ── Helpers ─────────────────────────────────────────────────────

def _check_dimensions(img: Image.Image, max_pixels: int) -> None:
    width, height = img.size
    if width <= 0 or height <= 0:
        raise TransformError(f"Invalid dimensions {width}x{height}")
    if width * height > max_pixels:
        raise TransformError(
            f"Image too large: {width}x{height} exceeds {max_pixels} pixels"
        )


def _prepare(img: Image.Image) -> Image.Image:
    """Decode the first frame, apply EXIF orientation, settle on RGB or RGBA."""
    if img.mode not in SUPPORTED_MODES:
        raise TransformError(f"Unsupported color space: {img.mode}")
    frame = ImageOps.exif_transpose(img)
    if frame is None:
        frame = img.copy()
    frame.load()
    has_alpha = frame.mode in ("LA", "PA", "RGBA", "RGBa") or "transparency" in frame.info
    return frame.convert("RGBA" if has_alpha else "RGB")


def _render(frame: Image.Image, tiers) -> list[EncodedVariant]:
    variants = []
    for tier in tiers:
        resized = _resize(frame, tier.max_width)
        for fmt in FORMATS:
            variants.append(EncodedVariant(
                size_tier=tier.size_tier,
                encoding=fmt.encoding,
                content_type=fmt.content_type,
                extension=fmt.extension,
                width=resized.width,
                height=resized.height,
                data=_encode(resized, fmt, tier.quality),
            ))
    return variants


def _resize(frame: Image.Image, max_width: int | None) -> Image.Image:
    if max_width is None or frame.width <= max_width:
        return frame
    height = max(1, round(frame.height * max_width / frame.width))
    return frame.resize((max_width, height), Image.Resampling.LANCZOS)


def _encode(image: Image.Image, fmt: OutputFormat, quality: int) -> bytes:
    if fmt.pil_format == "JPEG" and image.mode == "RGBA":
        # JPEG has no alpha: flatten onto white instead of black
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.getchannel("A"))
        image = background

    buffer = io.BytesIO()
    if fmt.pil_format == "JPEG":
        image.save(buffer, "JPEG", quality=quality, optimize=True)
    else:
        image.save(buffer, fmt.pil_format, quality=quality)
    return buffer.getvalue()
