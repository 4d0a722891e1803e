"""
Extractor registry — the one place that knows every metadata extractor.

The dispatcher asks for the whole set and runs them side by side; tests
and tools can look one up by name.
"""

from config.settings import Settings, settings as default_settings
from processing.base import AbstractExtractor
from processing.colors import DominantColorExtractor
from processing.exif import ExifExtractor


def create_extractors(config: Settings | None = None) -> list[AbstractExtractor]:
    """Fresh extractor instances configured from settings."""
    config = config or default_settings
    return [
        DominantColorExtractor(count=config.DOMINANT_COLOR_COUNT),
        ExifExtractor(),
    ]


def get_extractor(name: str, config: Settings | None = None) -> AbstractExtractor:
    """Look up an extractor by name. Raises ValueError if unknown."""
    extractors = {e.name: e for e in create_extractors(config)}
    extractor = extractors.get(name)
    if extractor is None:
        raise ValueError(
            f"Unknown extractor: '{name}'. Available: {list(extractors.keys())}"
        )
    return extractor
