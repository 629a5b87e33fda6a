# tests/test_change_listener.py

"""Tests for webhook verification, change fetching and run triggering."""

import hashlib
import hmac
import json
import unittest
from typing import Any
from unittest.mock import MagicMock

from src.services.change_listener import ChangeListener
from src.services.exceptions import (
    InvalidSignature,
    MalformedNotification,
    MissingSignature,
    SourceUnavailable,
)
from src.services.run_scheduler import RunScheduler
from src.sources.dropbox_source import DropboxSource

SECRET = "app-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    """Hex HMAC-SHA256 of *body*."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _body(*accounts: Any) -> bytes:
    """Notification body listing *accounts*."""
    return json.dumps(
        {"list_folder": {"accounts": list(accounts)}}
    ).encode()


def _file(path: str) -> dict[str, Any]:
    return {
        ".tag": "file",
        "name": path.rsplit("/", 1)[-1],
        "path_display": path,
        "path_lower": path.lower(),
    }


def _listener(folder: str = "/Products") -> ChangeListener:
    source = MagicMock(spec=DropboxSource)
    scheduler = MagicMock(spec=RunScheduler)
    return ChangeListener(SECRET, source, folder, scheduler)


class TestSignature(unittest.TestCase):
    """HMAC verification."""

    def test_valid_signature_accepted(self) -> None:
        """A correctly signed body passes."""
        body = _body("dbid:1")
        _listener().verify_signature(body, _sign(body))

    def test_uppercase_hex_accepted(self) -> None:
        """Hex case does not matter."""
        body = _body("dbid:1")
        _listener().verify_signature(body, _sign(body).upper())

    def test_tampered_body_rejected(self) -> None:
        """Changing one byte invalidates the signature."""
        body = _body("dbid:1")
        signature = _sign(body)
        with self.assertRaises(InvalidSignature):
            _listener().verify_signature(body + b" ", signature)

    def test_wrong_secret_rejected(self) -> None:
        """A body signed with another secret is rejected."""
        body = _body("dbid:1")
        with self.assertRaises(InvalidSignature):
            _listener().verify_signature(body, _sign(body, "other"))

    def test_missing_signature(self) -> None:
        """No header is a distinct, client-side error."""
        with self.assertRaises(MissingSignature):
            _listener().verify_signature(b"{}", None)
        with self.assertRaises(MissingSignature):
            _listener().verify_signature(b"{}", "")

    def test_unconfigured_secret_rejects(self) -> None:
        """Without a secret nothing verifies."""
        listener = ChangeListener(
            "", MagicMock(spec=DropboxSource), "", MagicMock()
        )
        body = b"{}"
        with self.assertRaises(InvalidSignature):
            listener.verify_signature(body, _sign(body, ""))


class TestParseAccounts(unittest.TestCase):
    """Notification body parsing."""

    def test_bare_ids_and_objects(self) -> None:
        """Both account shapes are understood."""
        pairs = ChangeListener.parse_accounts(
            _body("dbid:1", {"account_id": "dbid:2", "cursor": "c2"})
        )
        self.assertEqual(pairs, [("dbid:1", None), ("dbid:2", "c2")])

    def test_empty_accounts(self) -> None:
        """A body without list_folder yields no accounts."""
        self.assertEqual(ChangeListener.parse_accounts(b"{}"), [])

    def test_malformed_json(self) -> None:
        """Invalid JSON is rejected."""
        with self.assertRaises(MalformedNotification):
            ChangeListener.parse_accounts(b"{not json")

    def test_non_object_body(self) -> None:
        """A JSON array is not a notification."""
        with self.assertRaises(MalformedNotification):
            ChangeListener.parse_accounts(b"[1, 2]")


class TestRelevance(unittest.TestCase):
    """Change filtering."""

    def test_image_in_folder_is_relevant(self) -> None:
        """Folder prefix is compared case-insensitively."""
        self.assertTrue(_listener("/Products").is_relevant(
            _file("/PRODUCTS/Shoes/a.jpg")
        ))

    def test_outside_folder_ignored(self) -> None:
        """Changes elsewhere in the account are ignored."""
        self.assertFalse(_listener("/Products").is_relevant(
            _file("/Other/a.jpg")
        ))

    def test_sibling_folder_with_shared_prefix_ignored(self) -> None:
        """/Products does not cover /Products-old."""
        listener = _listener("/Products")
        self.assertFalse(listener.is_relevant(_file("/Products-old/a.jpg")))
        self.assertTrue(
            _listener("/Products/").is_relevant(_file("/Products/b/a.jpg"))
        )

    def test_non_image_and_deleted_ignored(self) -> None:
        """Non-image files and deletions never trigger."""
        listener = _listener("/Products")
        self.assertFalse(listener.is_relevant(_file("/Products/a.pdf")))
        deleted = _file("/Products/a.jpg")
        deleted[".tag"] = "deleted"
        self.assertFalse(listener.is_relevant(deleted))

    def test_empty_folder_watches_everything(self) -> None:
        """An unset folder means the whole account."""
        self.assertTrue(_listener("").is_relevant(_file("/x/y.png")))


class TestHandleNotification(unittest.IsolatedAsyncioTestCase):
    """End-to-end notification handling."""

    async def test_relevant_change_triggers_once(self) -> None:
        """Several relevant entries across accounts trigger one run."""
        listener = _listener()
        listener.cursors = {"dbid:1": "c1", "dbid:2": "c2"}
        listener.source.fetch_changes.side_effect = [
            ([_file("/Products/A/1.jpg"), _file("/Products/A/2.jpg")], "n1"),
            ([_file("/Products/B/3.jpg")], "n2"),
        ]
        body = _body("dbid:1", "dbid:2")

        triggered = await listener.handle_notification(body, _sign(body))

        self.assertTrue(triggered)
        listener.scheduler.trigger.assert_called_once()
        self.assertEqual(listener.cursors, {"dbid:1": "n1", "dbid:2": "n2"})

    async def test_irrelevant_changes_do_not_trigger(self) -> None:
        """Only non-image changes: no run."""
        listener = _listener()
        listener.cursors = {"dbid:1": "c1"}
        listener.source.fetch_changes.return_value = (
            [_file("/Products/notes.txt")], "n1"
        )
        body = _body("dbid:1")

        triggered = await listener.handle_notification(body, _sign(body))

        self.assertFalse(triggered)
        listener.scheduler.trigger.assert_not_called()
        self.assertEqual(listener.cursors["dbid:1"], "n1")

    async def test_cursor_from_notification_used(self) -> None:
        """A cursor in the body wins over the remembered one."""
        listener = _listener()
        listener.cursors = {"dbid:1": "stale"}
        listener.source.fetch_changes.return_value = ([], "fresh")
        body = _body({"account_id": "dbid:1", "cursor": "given"})

        await listener.handle_notification(body, _sign(body))

        listener.source.fetch_changes.assert_called_once_with("given")
        self.assertEqual(listener.cursors["dbid:1"], "fresh")

    async def test_unknown_account_requests_full_run(self) -> None:
        """No cursor yet: take a fresh one and run everything."""
        listener = _listener()
        listener.source.latest_cursor.return_value = "start"
        body = _body("dbid:new")

        triggered = await listener.handle_notification(body, _sign(body))

        self.assertTrue(triggered)
        listener.source.fetch_changes.assert_not_called()
        listener.source.latest_cursor.assert_called_once_with("/Products")
        self.assertEqual(listener.cursors["dbid:new"], "start")

    async def test_account_error_logged_not_raised(self) -> None:
        """A failing account does not stop the others."""
        listener = _listener()
        listener.cursors = {"dbid:1": "c1", "dbid:2": "c2"}
        listener.source.fetch_changes.side_effect = [
            SourceUnavailable("expired cursor"),
            ([_file("/Products/A/1.jpg")], "n2"),
        ]
        body = _body("dbid:1", "dbid:2")

        with self.assertLogs("product_finder.webhook", "ERROR"):
            triggered = await listener.handle_notification(body, _sign(body))

        self.assertTrue(triggered)
        listener.scheduler.trigger.assert_called_once()
        self.assertEqual(listener.cursors["dbid:1"], "c1")

    async def test_bad_signature_checked_before_body(self) -> None:
        """Tampered requests never reach the change fetcher."""
        listener = _listener()
        body = _body("dbid:1")
        with self.assertRaises(InvalidSignature):
            await listener.handle_notification(body, "00" * 32)
        listener.source.fetch_changes.assert_not_called()
        listener.scheduler.trigger.assert_not_called()


if __name__ == "__main__":
    unittest.main()
