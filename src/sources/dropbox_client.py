# src/sources/dropbox_client.py

"""Minimal Dropbox API v2 client covering list, continue and download."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.services.exceptions import SourceUnavailable

logger = logging.getLogger("product_finder.dropbox_client")

# Statuses that will not improve on retry (bad token, bad path, bad args)
_FATAL_STATUSES: frozenset[int] = frozenset({400, 401, 403, 409})


@dataclass
class ListPage:
    """One page of a folder listing."""

    entries: list[dict[str, Any]] = field(
        default_factory=lambda: list[dict[str, Any]]()
    )
    has_more: bool = False
    cursor: str = ""

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "ListPage":
        """Parse a ``list_folder`` / ``list_folder/continue`` body."""
        return cls(
            entries=list(data.get("entries", [])),
            has_more=bool(data.get("has_more", False)),
            cursor=str(data.get("cursor", "")),
        )


class DropboxClient:
    """Dropbox API v2 client over a curl_cffi session.

    Only the three calls the pipeline needs are implemented.  Every call
    either returns a parsed result or raises :class:`SourceUnavailable`.
    """

    def __init__(self, access_token: str | None = None) -> None:
        self.settings = Settings()
        token = access_token or self.settings.DROPBOX_ACCESS_TOKEN
        if not token:
            raise SourceUnavailable("DROPBOX_ACCESS_TOKEN is required")
        self._auth_header = f"Bearer {token}"
        self.session = curl_requests.Session()

    def _post(
        self,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any] | None,
    ) -> curl_requests.Response:
        """POST with retries; raise SourceUnavailable when exhausted."""
        last_error = ""
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.post(
                    url,
                    headers={
                        "Authorization": self._auth_header,
                        **headers,
                    },
                    data=(
                        json.dumps(payload)
                        if payload is not None
                        else None
                    ),
                    timeout=self.settings.REQUEST_TIMEOUT,
                )
                if resp.status_code == 200:
                    return resp
                last_error = (
                    f"HTTP {resp.status_code}: {resp.text[:200]}"
                )
                logger.warning(
                    "[dropbox] %s on attempt %d for %s",
                    last_error,
                    attempt + 1,
                    url,
                )
                if resp.status_code in _FATAL_STATUSES:
                    break
            except Exception as exc:
                last_error = str(exc)
                logger.warning(
                    "[dropbox] Request error on attempt %d: %s",
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
            if attempt + 1 < self.settings.MAX_RETRIES:
                time.sleep(
                    self.settings.REQUEST_DELAY * (attempt + 1)
                )
        raise SourceUnavailable(
            f"Dropbox request failed: {url}",
            details={"url": url, "error": last_error},
        )

    def _rpc(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Call a JSON-in/JSON-out API endpoint."""
        resp = self._post(
            f"{self.settings.DROPBOX_API_URL}/{endpoint}",
            {"Content-Type": "application/json"},
            payload,
        )
        try:
            data: dict[str, Any] = json.loads(resp.text)
        except json.JSONDecodeError as exc:
            raise SourceUnavailable(
                f"Dropbox returned invalid JSON for {endpoint}",
                cause=exc,
            ) from exc
        return data

    def list_folder(self, path: str, recursive: bool = True) -> ListPage:
        """List a folder; the first page of a possibly paginated result."""
        data = self._rpc(
            "files/list_folder",
            {"path": path, "recursive": recursive},
        )
        return ListPage.from_response(data)

    def list_folder_continue(self, cursor: str) -> ListPage:
        """Fetch the page following *cursor*."""
        data = self._rpc(
            "files/list_folder/continue", {"cursor": cursor}
        )
        return ListPage.from_response(data)

    def get_latest_cursor(self, path: str, recursive: bool = True) -> str:
        """Return a cursor positioned at the current state of *path*."""
        data = self._rpc(
            "files/list_folder/get_latest_cursor",
            {"path": path, "recursive": recursive},
        )
        return str(data.get("cursor", ""))

    def download(self, path: str) -> bytes:
        """Download a file's contents."""
        resp = self._post(
            f"{self.settings.DROPBOX_CONTENT_URL}/files/download",
            {"Dropbox-API-Arg": json.dumps({"path": path})},
            None,
        )
        content: bytes = resp.content
        return content
