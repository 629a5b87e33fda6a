# src/services/change_listener.py

"""Turns signed Dropbox change notifications into debounced pipeline runs."""

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any

from src.services.exceptions import (
    InvalidSignature,
    MalformedNotification,
    MissingSignature,
)
from src.services.run_scheduler import RunScheduler
from src.sources.base_source import is_image_file
from src.sources.dropbox_source import DropboxSource

logger = logging.getLogger("product_finder.webhook")


class ChangeListener:
    """Verify notifications, fetch what changed, and trigger a run.

    Cursors are tracked per account and only ever move forward.  A
    notification may carry its own cursor per account
    (``{"account_id": ..., "cursor": ...}``) or just the account id, in
    which case the last cursor seen for that account is used.  An account
    with no known cursor gets a fresh one and a full run is triggered,
    since changes before that point cannot be listed.
    """

    def __init__(
        self,
        secret: str,
        source: DropboxSource,
        monitored_folder: str,
        scheduler: RunScheduler,
    ) -> None:
        self._secret = secret.encode("utf-8")
        self.source = source
        self.monitored_folder = monitored_folder
        self.scheduler = scheduler
        self.cursors: dict[str, str] = {}

    # ── Verification ─────────────────────────────────────

    def verify_signature(self, body: bytes, signature: str | None) -> None:
        """Check the hex HMAC-SHA256 of *body* against *signature*.

        Raises:
            MissingSignature: no signature was supplied.
            InvalidSignature: the signature does not match.
        """
        if not signature:
            raise MissingSignature()
        if not self._secret:
            logger.warning("Webhook secret not set, rejecting notification")
            raise InvalidSignature("Webhook secret not configured")
        expected = hmac.new(
            self._secret, body, hashlib.sha256
        ).hexdigest()
        if not hmac.compare_digest(
            expected.encode("ascii"),
            signature.strip().lower().encode("utf-8"),
        ):
            raise InvalidSignature()

    # ── Parsing ──────────────────────────────────────────

    @staticmethod
    def parse_accounts(body: bytes) -> list[tuple[str, str | None]]:
        """Return ``(account_id, cursor)`` pairs from a notification body.

        Raises:
            MalformedNotification: the body is not the expected JSON.
        """
        try:
            notification: Any = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedNotification(
                "Notification body is not valid JSON", cause=exc
            ) from exc
        if not isinstance(notification, dict):
            raise MalformedNotification(
                "Notification body must be a JSON object"
            )

        list_folder = notification.get("list_folder") or {}
        accounts = (
            list_folder.get("accounts", [])
            if isinstance(list_folder, dict)
            else []
        )
        pairs: list[tuple[str, str | None]] = []
        for account in accounts:
            if isinstance(account, str):
                pairs.append((account, None))
            elif isinstance(account, dict):
                pairs.append((
                    str(account.get("account_id", "")),
                    account.get("cursor") or None,
                ))
        return pairs

    # ── Filtering ────────────────────────────────────────

    def is_relevant(self, entry: dict[str, Any]) -> bool:
        """True for image files inside the monitored folder."""
        if entry.get(".tag") != "file":
            return False
        path = str(entry.get("path_lower") or "").lower()
        prefix = self.monitored_folder.lower().rstrip("/") + "/"
        if not path.startswith(prefix):
            return False
        return is_image_file(str(entry.get("name", "")))

    # ── Change fetching ──────────────────────────────────

    def check_account(self, account_id: str, cursor: str | None) -> bool:
        """Fetch changes for one account; True if any are relevant."""
        cursor = cursor or self.cursors.get(account_id)
        if cursor is None:
            logger.info(
                "No cursor known for account %s, requesting a full run",
                account_id,
            )
            self.cursors[account_id] = self.source.latest_cursor(
                self.monitored_folder
            )
            return True

        entries, next_cursor = self.source.fetch_changes(cursor)
        if next_cursor:
            self.cursors[account_id] = next_cursor

        relevant = [e for e in entries if self.is_relevant(e)]
        for entry in relevant:
            logger.info("New image detected: %s", entry.get("name"))
        logger.debug(
            "Account %s: %d changed entries, %d relevant",
            account_id,
            len(entries),
            len(relevant),
        )
        return bool(relevant)

    async def handle_notification(
        self, body: bytes, signature: str | None,
    ) -> bool:
        """Validate a notification and trigger a run if images changed.

        Returns True if a run was requested.  Failures fetching changes
        for an account are logged; they never fail the notification.

        Raises:
            MissingSignature, InvalidSignature, MalformedNotification
        """
        self.verify_signature(body, signature)
        accounts = self.parse_accounts(body)
        logger.info(
            "Webhook notification received for %d account(s)",
            len(accounts),
        )

        has_relevant_changes = False
        for account_id, cursor in accounts:
            logger.info("Checking changes for account: %s", account_id)
            try:
                if await asyncio.to_thread(
                    self.check_account, account_id, cursor
                ):
                    has_relevant_changes = True
            except Exception as exc:
                logger.error(
                    "Error fetching changes for %s: %s",
                    account_id,
                    exc,
                    exc_info=True,
                )

        if has_relevant_changes:
            self.scheduler.trigger()
        return has_relevant_changes
