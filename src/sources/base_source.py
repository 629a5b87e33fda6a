# src/sources/base_source.py

"""Abstract base class for image sources."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from src.config.settings import Settings
from src.models.image_candidate import ImageCandidate, SourceKind


def is_image_file(name: str) -> bool:
    """Return True if *name* carries a supported image extension."""
    return PurePosixPath(name).suffix.lower() in Settings.IMAGE_EXTENSIONS


def to_relative_path(path: str) -> str:
    """Strip a single leading separator from a remote path."""
    return path[1:] if path.startswith("/") else path


class BaseSource(ABC):
    """Abstract base class for image sources."""

    source_kind: SourceKind

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"product_finder.{source_name}"
        )
        self.settings = Settings()

    @abstractmethod
    def list_candidates(self, root: str) -> list[ImageCandidate]:
        """Enumerate candidate images under *root*.

        Raises ``SourceUnavailable`` if the backing store is unreachable.
        """
        ...

    @abstractmethod
    def stage(
        self, candidate: ImageCandidate, staging_dir: Path,
    ) -> Path:
        """Make the candidate available as a local file and return its path.

        Staging the same candidate twice is safe.
        """
        ...
