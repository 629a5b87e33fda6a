# src/sources/local_source.py

"""Image source backed by a local directory of product folders."""

from pathlib import Path

from src.models.image_candidate import ImageCandidate, SourceKind
from src.services.exceptions import SourceUnavailable
from src.sources.base_source import BaseSource, is_image_file


class LocalSource(BaseSource):
    """Image source backed by a local directory tree.

    Every immediate subdirectory of the root is one product group; the
    first image inside it (in directory-listing order) represents the
    group.
    """

    source_kind = SourceKind.LOCAL

    def __init__(self) -> None:
        super().__init__("local")

    def list_candidates(self, root: str) -> list[ImageCandidate]:
        """Return one representative image per product folder."""
        root_path = Path(root)
        if not root_path.is_dir():
            raise SourceUnavailable(
                f"Images directory not found: {root_path}",
                details={"root": str(root_path)},
            )

        try:
            groups = sorted(
                p for p in root_path.iterdir() if p.is_dir()
            )
        except OSError as exc:
            raise SourceUnavailable(
                f"Cannot list images directory: {root_path}",
                details={"root": str(root_path)},
                cause=exc,
            ) from exc

        self.logger.info(
            "[local] Found %d product directories in %s",
            len(groups),
            root_path,
        )

        candidates: list[ImageCandidate] = []
        for group_dir in groups:
            try:
                images = sorted(
                    f.name
                    for f in group_dir.iterdir()
                    if f.is_file() and is_image_file(f.name)
                )
            except OSError as exc:
                self.logger.warning(
                    "[local] Skipping unreadable folder %s: %s",
                    group_dir,
                    exc,
                )
                continue

            if not images:
                self.logger.debug(
                    "[local] No images found in %s", group_dir.name
                )
                continue

            first = images[0]
            candidates.append(
                ImageCandidate(
                    source_kind=self.source_kind,
                    source_path=str(group_dir / first),
                    display_name=first,
                    group=group_dir.name,
                )
            )

        return candidates

    def stage(
        self, candidate: ImageCandidate, staging_dir: Path,
    ) -> Path:
        """Local files are already staged; verify the file still exists."""
        path = Path(candidate.source_path)
        if not path.is_file():
            raise SourceUnavailable(
                f"Image disappeared before staging: {path}",
                details={"path": str(path)},
            )
        return path
