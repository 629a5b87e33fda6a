# src/sources/dropbox_source.py

"""Image source backed by a Dropbox folder."""

from pathlib import Path, PurePosixPath
from typing import Any

from src.models.image_candidate import ImageCandidate, SourceKind
from src.services.exceptions import SourceUnavailable
from src.sources.base_source import (
    BaseSource,
    is_image_file,
    to_relative_path,
)
from src.sources.dropbox_client import DropboxClient, ListPage


class DropboxSource(BaseSource):
    """Image source backed by a (recursively listed) Dropbox folder.

    Listing follows the continuation cursor until Dropbox reports no more
    pages, so callers always see the complete folder.  Every image file is
    returned; the first path segment below the root names its group.
    """

    source_kind = SourceKind.DROPBOX

    def __init__(self, client: DropboxClient | None = None) -> None:
        super().__init__("dropbox")
        self.client = client or DropboxClient()

    # ── Pagination ───────────────────────────────────────

    def _drain(
        self, page: ListPage,
    ) -> tuple[list[dict[str, Any]], str]:
        """Follow ``has_more`` from *page*, returning all entries and the
        final cursor."""
        entries: list[dict[str, Any]] = list(page.entries)
        pages = 1
        while page.has_more:
            page = self.client.list_folder_continue(page.cursor)
            entries.extend(page.entries)
            pages += 1
        self.logger.debug(
            "[dropbox] Collected %d entries over %d page(s)",
            len(entries),
            pages,
        )
        return entries, page.cursor

    def list_entries(self, root: str) -> tuple[list[dict[str, Any]], str]:
        """Recursively list *root*; return raw entries and the end cursor."""
        self.logger.info(
            "[dropbox] Listing images from folder: %s", root or "/"
        )
        return self._drain(
            self.client.list_folder(root, recursive=True)
        )

    def fetch_changes(
        self, cursor: str,
    ) -> tuple[list[dict[str, Any]], str]:
        """Return every entry changed since *cursor* and the new cursor."""
        return self._drain(self.client.list_folder_continue(cursor))

    def latest_cursor(self, root: str) -> str:
        """Return a cursor for *root* positioned at its current state."""
        return self.client.get_latest_cursor(root, recursive=True)

    # ── BaseSource API ───────────────────────────────────

    @staticmethod
    def _group_for(path_display: str, root: str) -> str:
        """Name the product group a file belongs to."""
        root_parts = PurePosixPath("/" + to_relative_path(root)).parts
        parts = PurePosixPath(path_display).parts[len(root_parts):]
        return parts[0] if len(parts) >= 2 else "root"

    def list_candidates(self, root: str) -> list[ImageCandidate]:
        """Return every image file under *root*, in listing order."""
        entries, _ = self.list_entries(root)

        candidates: list[ImageCandidate] = []
        for entry in entries:
            if entry.get(".tag") != "file":
                continue
            name = str(entry.get("name", ""))
            if not is_image_file(name):
                continue
            path_display = str(
                entry.get("path_display") or entry.get("path_lower") or ""
            )
            candidates.append(
                ImageCandidate(
                    source_kind=self.source_kind,
                    source_path=path_display,
                    display_name=name,
                    group=self._group_for(path_display, root),
                )
            )

        self.logger.info(
            "[dropbox] Found %d images in Dropbox", len(candidates)
        )
        return candidates

    def stage(
        self, candidate: ImageCandidate, staging_dir: Path,
    ) -> Path:
        """Download the candidate into *staging_dir*, overwriting any copy."""
        target = staging_dir / to_relative_path(candidate.source_path)
        self.logger.debug(
            "[dropbox] Downloading %s -> %s",
            candidate.source_path,
            target,
        )
        data = self.client.download(candidate.source_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise SourceUnavailable(
                f"Cannot write staged image: {target}",
                cause=exc,
            ) from exc
        return target
