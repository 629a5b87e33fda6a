# src/models/image_candidate.py

"""Image candidate model produced by source enumeration."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

_MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}


def guess_mime_type(name: str) -> str:
    """MIME type guessed from a file name's extension."""
    ext = PurePosixPath(name).suffix.lower()
    return _MIME_TYPES.get(ext, "image/jpeg")


class SourceKind(str, Enum):
    """Where a candidate image lives."""

    LOCAL = "local"
    DROPBOX = "dropbox"


@dataclass(frozen=True)
class ImageCandidate:
    """An enumerated image not yet known to be new or already processed."""

    source_kind: SourceKind
    source_path: str
    display_name: str
    group: str
    local_staging_path: Path | None = None

    @property
    def storage_path(self) -> str:
        """Catalog key this candidate is saved under."""
        prefix = (
            "images"
            if self.source_kind is SourceKind.LOCAL
            else "dropbox"
        )
        return str(PurePosixPath(prefix, self.group, self.display_name))

    @property
    def public_path(self) -> str:
        """Path the frontend serves the image from."""
        return str(
            PurePosixPath("images", self.group, self.display_name)
        )
