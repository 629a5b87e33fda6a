# src/storage/catalog_store.py

"""JSON-file catalog of analysed products plus its public snapshot."""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.catalog_entry import CatalogEntry, PublicSnapshot
from src.models.image_candidate import ImageCandidate
from src.services.exceptions import CatalogWriteFailed

logger = logging.getLogger("product_finder.storage")


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write *data* as JSON to *path* via a same-directory temp file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _item_key(item: Any) -> str | None:
    """The ``imagePath`` of a stored catalog item, if it has one."""
    if isinstance(item, dict) and isinstance(item.get("imagePath"), str):
        return item["imagePath"]
    return None


class CatalogStore:
    """Owns the catalog document and the snapshot derived from it.

    The catalog (``data/products.json``) is the write side: an ordered list
    of entries, unique by ``image_path``.  The snapshot
    (``public/data/products.json``) is rebuilt from the catalog after every
    write and is the only file the frontend reads.  The catalog is always
    written first.
    """

    def __init__(
        self,
        catalog_path: Path | None = None,
        snapshot_path: Path | None = None,
    ) -> None:
        self.catalog_path: Path = catalog_path or Settings.CATALOG_PATH
        self.snapshot_path: Path = snapshot_path or Settings.SNAPSHOT_PATH
        self._lock = threading.Lock()
        logger.debug(
            "CatalogStore initialised, catalog=%s snapshot=%s",
            self.catalog_path,
            self.snapshot_path,
        )

    def _read(self) -> list[Any]:
        """Return the catalog items exactly as stored.

        Raises:
            CatalogWriteFailed: the file exists but is not a JSON list, so
                nothing may be written over it.
        """
        if not self.catalog_path.exists():
            return []
        try:
            with open(self.catalog_path, encoding="utf-8") as f:
                raw: Any = json.load(f)
        except (OSError, ValueError) as exc:
            raise CatalogWriteFailed(
                f"Unreadable catalog {self.catalog_path}, not overwriting",
                cause=exc,
            ) from exc
        if not isinstance(raw, list):
            raise CatalogWriteFailed(
                f"Catalog {self.catalog_path} is not a list, not overwriting",
                details={"type": type(raw).__name__},
            )
        return raw

    def load(self) -> list[CatalogEntry]:
        """Load the entries that parse; anything else is logged and skipped.

        A missing or unreadable file reads as an empty catalog.
        """
        try:
            raw = self._read()
        except CatalogWriteFailed as exc:
            logger.warning("Could not load existing catalog: %s", exc)
            return []

        entries: list[CatalogEntry] = []
        for idx, item in enumerate(raw):
            try:
                entries.append(CatalogEntry.from_dict(item))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping malformed catalog item %d in %s: %r",
                    idx,
                    self.catalog_path,
                    exc,
                )
        return entries

    @staticmethod
    def match_processed(
        entries: list[CatalogEntry], candidate: ImageCandidate,
    ) -> CatalogEntry | None:
        """Find an entry that already covers *candidate*.

        An entry matches when its path equals the candidate's storage path,
        equals its public ``images/<group>/<file>`` path, or contains the
        candidate's file name.  Exact matches win over name containment.
        """
        exact = {candidate.storage_path, candidate.public_path}
        for entry in entries:
            if entry.image_path in exact:
                return entry
        for entry in entries:
            if candidate.display_name in entry.image_path:
                return entry
        return None

    def find_processed(
        self, candidate: ImageCandidate,
    ) -> CatalogEntry | None:
        """Dedup lookup against the current catalog contents."""
        return self.match_processed(self.load(), candidate)

    def upsert(self, entry: CatalogEntry) -> bool:
        """Insert or replace *entry* and republish the snapshot.

        Every other stored item is written back untouched.  Returns True
        when an existing entry was replaced.

        Raises:
            CatalogWriteFailed: the existing catalog is unreadable, or the
                catalog or snapshot could not be written.
        """
        with self._lock:
            items = self._read()
            new_item = entry.to_dict()
            replaced = False
            for idx, item in enumerate(items):
                if _item_key(item) == entry.image_path:
                    items[idx] = new_item
                    replaced = True
                    break
            if not replaced:
                items.append(new_item)

            try:
                _atomic_write_json(self.catalog_path, items)
            except OSError as exc:
                raise CatalogWriteFailed(
                    f"Could not save to {self.catalog_path}",
                    details={"imagePath": entry.image_path},
                    cause=exc,
                ) from exc

            logger.info(
                "%s analysis for %s in %s",
                "Updated existing" if replaced else "Saved new",
                entry.image_path,
                self.catalog_path,
            )
            self._write_snapshot(items)
        return replaced

    def publish_snapshot(self) -> PublicSnapshot:
        """Rebuild the public snapshot from the catalog on disk.

        Raises:
            CatalogWriteFailed: the catalog is unreadable or the snapshot
                could not be written.
        """
        with self._lock:
            return self._write_snapshot(self._read())

    def _write_snapshot(self, items: list[Any]) -> PublicSnapshot:
        """Write the snapshot for the stored *items*."""
        snapshot = PublicSnapshot(
            entries=[item for item in items if _item_key(item) is not None]
        )
        try:
            _atomic_write_json(self.snapshot_path, snapshot.to_dict())
        except OSError as exc:
            raise CatalogWriteFailed(
                f"Could not publish snapshot to {self.snapshot_path}",
                cause=exc,
            ) from exc
        logger.info(
            "Published snapshot with %d products to %s",
            snapshot.count,
            self.snapshot_path,
        )
        return snapshot
