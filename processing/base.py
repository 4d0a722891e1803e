"""
Abstract base class for metadata extractors.

Each extractor (dominant colors, camera EXIF) implements this interface.
The dispatcher runs every registered extractor against the same raw
buffer, each in its own thread, without knowing which kind it is.

Strategy pattern again:
- AbstractExtractor = interface
- DominantColorExtractor, ExifExtractor = implementations
- registry.py = factory lookup

Extractors are best-effort. run() may raise anything; the dispatcher logs
the failure and the record simply lacks that extractor's fields. An
extractor must never return placeholder values for data it did not find —
return an empty dict instead.
"""

from abc import ABC, abstractmethod


class AbstractExtractor(ABC):

    @abstractmethod
    def run(self, data: bytes) -> dict:
        """
        Analyze raw media bytes.

        Args:
            data: the untouched upload, shared read-only with the transform.

        Returns:
            dict of MediaRecord fields this extractor found, e.g.
            {"dominant_colors": ["red", "white"]} or {"exif": {"make": "Canon"}}.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier used in logs and the registry (e.g., 'colors')."""
        ...
