# tests/test_catalog_store.py

"""Tests for the JSON catalog store and its public snapshot."""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from src.models.catalog_entry import CatalogEntry
from src.models.image_candidate import ImageCandidate, SourceKind
from src.models.product import ListingResult, ProductMetadata
from src.services.exceptions import CatalogWriteFailed
from src.storage.catalog_store import CatalogStore


def _entry(image_path: str, title: str = "Abbey Road") -> CatalogEntry:
    """Create a minimal catalog entry."""
    return CatalogEntry(
        image_path=image_path,
        product_metadata=ProductMetadata("cd", title),
        listings=[
            ListingResult(
                id="MLA1", title=title, price=1500,
                permalink="https://articulo.mercadolibre.com.ar/MLA1",
            )
        ],
    )


class TestCatalogStore(unittest.TestCase):
    """Load, upsert and snapshot behaviour."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        base = Path(self._tmp.name)
        self.catalog_path = base / "data" / "products.json"
        self.snapshot_path = base / "public" / "data" / "products.json"
        self.store = CatalogStore(self.catalog_path, self.snapshot_path)

    def _snapshot(self) -> dict:
        with open(self.snapshot_path, encoding="utf-8") as f:
            return json.load(f)

    def test_load_missing_file_is_empty(self) -> None:
        """No catalog file yet means an empty catalog."""
        self.assertEqual(self.store.load(), [])

    def _write_catalog(self, items: list) -> str:
        self.catalog_path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(items, ensure_ascii=False, indent=2)
        self.catalog_path.write_text(text, encoding="utf-8")
        return text

    def test_upsert_refuses_unreadable_catalog(self) -> None:
        """A catalog that is not valid JSON is never overwritten."""
        self.catalog_path.parent.mkdir(parents=True)
        self.catalog_path.write_text("{not json", encoding="utf-8")

        with self.assertRaises(CatalogWriteFailed):
            self.store.upsert(_entry("images/c/c.jpg"))

        self.assertEqual(
            self.catalog_path.read_text(encoding="utf-8"), "{not json"
        )
        self.assertFalse(self.snapshot_path.exists())

    def test_upsert_refuses_non_list_catalog(self) -> None:
        """A JSON object at the top level is left alone too."""
        text = json.dumps({"products": []})
        self.catalog_path.parent.mkdir(parents=True)
        self.catalog_path.write_text(text, encoding="utf-8")

        with self.assertRaises(CatalogWriteFailed):
            self.store.upsert(_entry("images/c/c.jpg"))
        self.assertEqual(self.catalog_path.read_text(encoding="utf-8"), text)

    def test_publish_refuses_unreadable_catalog(self) -> None:
        """An unreadable catalog does not blank the snapshot."""
        self.catalog_path.parent.mkdir(parents=True)
        self.catalog_path.write_text("[{", encoding="utf-8")
        with self.assertRaises(CatalogWriteFailed):
            self.store.publish_snapshot()
        self.assertFalse(self.snapshot_path.exists())

    def test_load_unreadable_catalog_is_empty(self) -> None:
        """The read-only lookup path treats an unreadable file as empty."""
        self.catalog_path.parent.mkdir(parents=True)
        self.catalog_path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("product_finder.storage", "WARNING"):
            self.assertEqual(self.store.load(), [])

    def test_malformed_sibling_survives_upsert(self) -> None:
        """An entry that does not parse is kept as-is on the next save."""
        good = _entry("images/a/a.jpg").to_dict()
        odd = {
            "imagePath": "images/b/b.jpg",
            "productData": {"categoria": "cd", "titulo": "B"},
            "mlResults": [{"id": "MLA9", "price": "12.999"}],
        }
        self._write_catalog([good, odd])

        with self.assertLogs("product_finder.storage", "WARNING"):
            self.assertEqual(
                [e.image_path for e in self.store.load()], ["images/a/a.jpg"]
            )
        self.store.upsert(_entry("images/c/c.jpg"))

        with open(self.catalog_path, encoding="utf-8") as f:
            stored = json.load(f)
        self.assertEqual(stored[:2], [good, odd])
        self.assertEqual(stored[2]["imagePath"], "images/c/c.jpg")

    def test_untouched_entries_round_trip_unchanged(self) -> None:
        """Upserting one key leaves every sibling exactly as stored."""
        sibling = {
            "imagePath": "images/a/a.jpg",
            "productData": {"categoria": "cd", "titulo": "A", "anio": "1999"},
            "timestamp": "2025-05-01T10:00:00Z",
        }
        text = self._write_catalog([sibling])

        self.store.upsert(_entry("images/c/c.jpg"))

        written = self.catalog_path.read_text(encoding="utf-8")
        self.assertTrue(written.startswith(text[:-2]))
        with open(self.catalog_path, encoding="utf-8") as f:
            self.assertEqual(json.load(f)[0], sibling)
        self.assertEqual(self._snapshot()["products"][0], sibling)

    def test_upsert_appends_and_publishes(self) -> None:
        """A new key is appended and the snapshot republished."""
        replaced = self.store.upsert(_entry("images/a/1.jpg"))

        self.assertFalse(replaced)
        self.assertEqual(len(self.store.load()), 1)
        snapshot = self._snapshot()
        self.assertEqual(snapshot["count"], 1)
        self.assertEqual(
            snapshot["products"][0]["imagePath"], "images/a/1.jpg"
        )
        self.assertIn("lastUpdated", snapshot)

    def test_upsert_replaces_same_key(self) -> None:
        """Re-upserting a key replaces the entry in place."""
        self.store.upsert(_entry("images/a/1.jpg", "Old"))
        self.store.upsert(_entry("images/b/2.jpg"))
        replaced = self.store.upsert(_entry("images/a/1.jpg", "New"))

        entries = self.store.load()
        self.assertTrue(replaced)
        self.assertEqual(
            [e.image_path for e in entries],
            ["images/a/1.jpg", "images/b/2.jpg"],
        )
        self.assertEqual(entries[0].product_metadata.title, "New")

    def test_image_paths_unique_after_many_upserts(self) -> None:
        """No two entries ever share an image path."""
        for _ in range(3):
            for key in ("images/a/1.jpg", "dropbox/b/2.jpg"):
                self.store.upsert(_entry(key))
        paths = [e.image_path for e in self.store.load()]
        self.assertEqual(len(paths), len(set(paths)))
        self.assertEqual(self._snapshot()["count"], 2)

    def test_catalog_uses_wire_keys(self) -> None:
        """The file on disk keeps the camelCase/Spanish layout."""
        self.store.upsert(_entry("images/a/1.jpg"))
        with open(self.catalog_path, encoding="utf-8") as f:
            raw = json.load(f)
        self.assertEqual(raw[0]["productData"]["categoria"], "cd")
        self.assertEqual(raw[0]["mlResults"][0]["id"], "MLA1")

    def test_publish_snapshot_from_existing_catalog(self) -> None:
        """publish_snapshot mirrors whatever the catalog holds."""
        self.catalog_path.parent.mkdir(parents=True)
        self.catalog_path.write_text(
            json.dumps([_entry("images/x/y.jpg").to_dict()]),
            encoding="utf-8",
        )
        snapshot = self.store.publish_snapshot()
        self.assertEqual(snapshot.count, 1)
        self.assertEqual(self._snapshot()["count"], 1)

    def test_write_failure_leaves_catalog_intact(self) -> None:
        """A failed write raises and the previous catalog survives."""
        self.store.upsert(_entry("images/a/1.jpg"))
        with patch(
            "src.storage.catalog_store.os.replace",
            side_effect=OSError("disk full"),
        ):
            with self.assertRaises(CatalogWriteFailed):
                self.store.upsert(_entry("images/b/2.jpg"))
        self.assertEqual(
            [e.image_path for e in self.store.load()], ["images/a/1.jpg"]
        )
        leftovers = [
            p for p in self.catalog_path.parent.iterdir()
            if p.name.endswith(".tmp")
        ]
        self.assertEqual(leftovers, [])


class TestMatchProcessed(unittest.TestCase):
    """The already-processed rule used for dedup."""

    def setUp(self) -> None:
        self.entries = [
            _entry("images/shoes/a.jpg"),
            _entry("dropbox/Books/cover.png"),
        ]

    def test_storage_path_match(self) -> None:
        """Exact storage path matches."""
        cand = ImageCandidate(
            SourceKind.DROPBOX, "/P/Books/cover.png", "cover.png", "Books"
        )
        match = CatalogStore.match_processed(self.entries, cand)
        self.assertEqual(match.image_path, "dropbox/Books/cover.png")

    def test_public_path_match(self) -> None:
        """A Dropbox image already stored under images/ matches."""
        cand = ImageCandidate(
            SourceKind.DROPBOX, "/P/shoes/a.jpg", "a.jpg", "shoes"
        )
        match = CatalogStore.match_processed(self.entries, cand)
        self.assertEqual(match.image_path, "images/shoes/a.jpg")

    def test_display_name_containment(self) -> None:
        """A legacy key containing the file name matches."""
        entries = [_entry("temp-images/Products/Vinyl/front.jpg")]
        cand = ImageCandidate(
            SourceKind.DROPBOX, "/Products/Vinyl/front.jpg",
            "front.jpg", "Vinyl",
        )
        match = CatalogStore.match_processed(entries, cand)
        self.assertIsNotNone(match)

    def test_exact_match_preferred_over_name(self) -> None:
        """Exact key beats an earlier name-only hit."""
        entries = [_entry("images/other/a.jpg"), _entry("images/shoes/a.jpg")]
        cand = ImageCandidate(
            SourceKind.LOCAL, "/x/shoes/a.jpg", "a.jpg", "shoes"
        )
        match = CatalogStore.match_processed(entries, cand)
        self.assertEqual(match.image_path, "images/shoes/a.jpg")

    def test_new_candidate_no_match(self) -> None:
        """An unseen file is new."""
        cand = ImageCandidate(
            SourceKind.LOCAL, "/x/hats/h.jpg", "h.jpg", "hats"
        )
        self.assertIsNone(CatalogStore.match_processed(self.entries, cand))


if __name__ == "__main__":
    unittest.main()
