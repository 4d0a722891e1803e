"""
Camera/EXIF extractor.

Reads the fields photographers care about:

    make, model                 ← base IFD
    focal_length (mm)           ← Exif IFD FocalLength
    aperture (f-number)         ← Exif IFD FNumber
    shutter_speed ("1/250")     ← Exif IFD ExposureTime
    iso                         ← Exif IFD ISOSpeedRatings

Only fields that are actually present (and non-zero) are returned.
A phone screenshot with no EXIF yields {}, not a dict of Nones.
"""

import io

from PIL import ExifTags, Image

from processing.base import AbstractExtractor


def _clean_text(value) -> str | None:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if not isinstance(value, str):
        return None
    text = value.replace("\x00", "").strip()
    return text or None


def _as_float(value) -> float | None:
    if isinstance(value, (tuple, list)):
        value = value[0] if value else None
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return number if number > 0 else None


def format_shutter_speed(value) -> str | None:
    seconds = _as_float(value)
    if seconds is None:
        return None
    if seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}"


class ExifExtractor(AbstractExtractor):

    def run(self, data: bytes) -> dict:
        with Image.open(io.BytesIO(data)) as img:
            exif = img.getexif()
            details = exif.get_ifd(ExifTags.IFD.Exif)

        fields = {
            "make": _clean_text(exif.get(ExifTags.Base.Make)),
            "model": _clean_text(exif.get(ExifTags.Base.Model)),
        }

        focal_length = _as_float(details.get(ExifTags.Base.FocalLength))
        aperture = _as_float(details.get(ExifTags.Base.FNumber))
        iso = _as_float(details.get(ExifTags.Base.ISOSpeedRatings))
        fields["focal_length"] = round(focal_length, 1) if focal_length else None
        fields["aperture"] = round(aperture, 1) if aperture else None
        fields["shutter_speed"] = format_shutter_speed(details.get(ExifTags.Base.ExposureTime))
        fields["iso"] = int(iso) if iso else None

        found = {k: v for k, v in fields.items() if v is not None}
        return {"exif": found} if found else {}

    @property
    def name(self) -> str:
        return "exif"
