"""
Dominant color extractor.

Returns up to K named colors, most prominent first, from a fixed palette
of names the front-end filters on:

    red orange yellow green blue purple pink brown black white gray

How:
1. Downscale to 64x64 (color share survives, work drops ~1000x)
2. Median-cut quantize to 8 palette entries
3. Sort palette entries by pixel count
4. Name each entry by hue/saturation/value, drop repeats, keep K

Example result:
    {"dominant_colors": ["blue", "white", "gray"]}
"""

import colorsys
import io

from PIL import Image

from processing.base import AbstractExtractor

COLOR_NAMES = (
    "red", "orange", "yellow", "green", "blue", "purple",
    "pink", "brown", "black", "white", "gray",
)


def name_color(red: int, green: int, blue: int) -> str:
    """Map an RGB triple onto the closest of COLOR_NAMES."""
    hue, saturation, value = colorsys.rgb_to_hsv(red / 255, green / 255, blue / 255)
    degrees = hue * 360

    if value < 0.18:
        return "black"
    if saturation < 0.15:
        if value > 0.85:
            return "white"
        return "gray"

    if degrees < 15 or degrees >= 345:
        return "red"
    if degrees < 45:
        # Dark oranges read as brown
        return "brown" if value < 0.6 else "orange"
    if degrees < 70:
        return "yellow"
    if degrees < 165:
        return "green"
    if degrees < 255:
        return "blue"
    if degrees < 290:
        return "purple"
    return "pink"


class DominantColorExtractor(AbstractExtractor):

    SAMPLE_SIZE = (64, 64)
    PALETTE_SIZE = 8

    def __init__(self, count: int = 3):
        self._count = count

    def run(self, data: bytes) -> dict:
        with Image.open(io.BytesIO(data)) as img:
            sample = img.convert("RGB")
        sample.thumbnail(self.SAMPLE_SIZE)

        quantized = sample.quantize(colors=self.PALETTE_SIZE)
        palette = quantized.getpalette() or []
        counts = quantized.getcolors() or []

        names: list[str] = []
        for _, index in sorted(counts, reverse=True):
            rgb = palette[index * 3:index * 3 + 3]
            if len(rgb) < 3:
                continue
            name = name_color(*rgb)
            if name not in names:
                names.append(name)
            if len(names) >= self._count:
                break

        return {"dominant_colors": names} if names else {}

    @property
    def name(self) -> str:
        return "colors"
