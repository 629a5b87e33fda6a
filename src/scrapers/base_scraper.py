# src/scrapers/base_scraper.py

"""Shared HTTP plumbing for marketplace resolvers.

Fetching a results page goes through two transports: a curl_cffi session
impersonating a desktop browser, then cloudscraper when the first one is
exhausted.  Both share one deadline of ``RESULTS_TIMEOUT`` seconds, so a
slow marketplace fails the item instead of stalling the run.  Responses
that are really block pages (Cloudflare challenges, CAPTCHA interstitials)
count as failures.  Repeated failures trip a circuit breaker so a
marketplace outage costs one timeout per item instead of ``MAX_RETRIES``
of them.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.models.product import ListingResult, ProductMetadata

# Substrings that only appear on Cloudflare interstitials
CHALLENGE_MARKERS: tuple[str, ...] = (
    "challenges.cloudflare.com",
    "cdn-cgi/challenge-platform",
    "just a moment",
    "cf-turnstile",
    "cf_chl_opt",
)

# Rate-limit style statuses that warrant a longer pause
_THROTTLE_STATUSES: frozenset[int] = frozenset({403, 429})

# Pages longer than this with a <body> are real results pages
_CONTENT_PAGE_MIN_LENGTH = 5000


class BaseScraper(ABC):
    """Base class for marketplace resolvers.

    Subclasses provide the homepage (sent as Referer) and ``resolve``;
    selectors are read from ``selectors.json`` under ``source_name`` as
    ordered lists per field.
    """

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"product_finder.{source_name}"
        )
        self.settings = Settings()
        self.selectors = self._load_selectors()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._request_timeout: int = self.settings.RESULTS_TIMEOUT
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0

    def _load_selectors(self) -> dict[str, list[str]]:
        """Selector chains for this source; a bare string is a chain of one."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            raw: dict[str, Any] = json.load(f).get(self.source_name, {})
        return {
            field: [value] if isinstance(value, str) else list(value)
            for field, value in raw.items()
        }

    # ── Block-page detection ─────────────────────────────

    def _block_reason(self, text: str) -> str | None:
        """Why *text* looks like a block page, or None if it looks real."""
        lower = text.lower()
        for marker in CHALLENGE_MARKERS:
            if marker in lower:
                return f"Cloudflare challenge ({marker})"

        # Listing titles can legitimately mention these words
        if "<body" in lower and len(text) > _CONTENT_PAGE_MIN_LENGTH:
            return None
        for keyword in self.settings.CAPTCHA_KEYWORDS:
            if keyword in lower:
                return f"CAPTCHA keyword '{keyword}'"
        return None

    def _validate_response(
        self, resp: curl_requests.Response,
    ) -> bool:
        """True unless the 200 response is a block page."""
        reason = self._block_reason(resp.text)
        if reason is None:
            return True
        self.logger.warning(
            "[%s] Block page detected: %s", self.source_name, reason
        )
        return False

    # ── Circuit breaker and pacing ───────────────────────

    def _check_circuit(self) -> bool:
        """Return True while the breaker is open.

        Once CIRCUIT_BREAKER_COOLDOWN has elapsed the breaker closes
        provisionally; the next failure re-opens it straight away because
        the failure counter is only reset by a success.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed < self.settings.CIRCUIT_BREAKER_COOLDOWN:
            return True
        self.logger.info(
            "[%s] Circuit breaker half-open after %.0fs, probing",
            self.source_name,
            elapsed,
        )
        self._circuit_open = False
        return False

    def _record_success(self) -> None:
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if (
            self._consecutive_failures
            < self.settings.CIRCUIT_BREAKER_THRESHOLD
        ):
            return
        self._circuit_open = True
        self._circuit_opened_at = time.time()
        self.logger.error(
            "[%s] Circuit breaker opened after %d consecutive failures",
            self.source_name,
            self._consecutive_failures,
        )

    def _escalate_delay(self) -> None:
        """Double the pause between requests, up to the configured cap."""
        ceiling = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, ceiling)
        self.logger.warning(
            "[%s] Throttled, delay now %.1fs",
            self.source_name,
            self._current_delay,
        )

    def _wait(self) -> None:
        """Pause for the current (possibly escalated) delay."""
        time.sleep(self._current_delay)

    # ── Transports ───────────────────────────────────────

    def _pause(self, seconds: float, deadline: float) -> None:
        """Sleep for *seconds*, but never past *deadline*."""
        time.sleep(max(0.0, min(seconds, deadline - time.monotonic())))

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        deadline: float | None = None,
    ) -> curl_requests.Response | None:
        """GET through curl_cffi; None once attempts or time run out.

        Every attempt and backoff pause fits inside *deadline* (a
        ``time.monotonic()`` instant, default ``RESULTS_TIMEOUT`` from now).
        """
        if self._check_circuit():
            return None
        if deadline is None:
            deadline = time.monotonic() + self._request_timeout
        for attempt in range(1, self.settings.MAX_RETRIES + 1):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.logger.warning(
                    "[%s] Gave up on %s after %ds",
                    self.source_name,
                    url,
                    self._request_timeout,
                )
                break
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    timeout=min(self._request_timeout, remaining),
                )
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt,
                    exc,
                    exc_info=True,
                )
                self._pause(self._current_delay * attempt, deadline)
                continue

            if resp.status_code == 200:
                if self._validate_response(resp):
                    self._record_success()
                    return resp
                self._escalate_delay()
                self._pause(self._current_delay, deadline)
                continue

            self.logger.warning(
                "[%s] HTTP %d on attempt %d",
                self.source_name,
                resp.status_code,
                attempt,
            )
            if resp.status_code in _THROTTLE_STATUSES:
                self._escalate_delay()
                self._pause(self._current_delay, deadline)

        self._record_failure()
        return None

    def _fallback_get(
        self, url: str, headers: dict[str, str], timeout: float,
    ) -> str | None:
        """GET through cloudscraper's JS-challenge solver."""
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.source_name,
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            resp: Any = scraper.get(url, headers=headers, timeout=timeout)
        except Exception as exc:
            self.logger.error(
                "[%s] cloudscraper fallback failed: %s",
                self.source_name,
                exc,
                exc_info=True,
            )
            return None
        if resp.status_code != 200:
            self.logger.warning(
                "[%s] cloudscraper got HTTP %d",
                self.source_name,
                resp.status_code,
            )
            return None
        return str(resp.text)

    def _get_page(self, url: str) -> BeautifulSoup | None:
        """Fetch and parse *url*; None when both transports fail.

        Once the pacing delay has passed, the whole fetch (retries,
        backoff, fallback) is bounded by ``RESULTS_TIMEOUT``.
        """
        if self._check_circuit():
            self.logger.warning(
                "[%s] Circuit open, skipping %s", self.source_name, url
            )
            return None
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }
        self._wait()
        deadline = time.monotonic() + self._request_timeout

        resp = self._fetch_get(url, headers, deadline)
        if resp is not None:
            html: str | None = resp.text
        else:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            html = self._fallback_get(url, headers, remaining)
        if html is None:
            return None
        return BeautifulSoup(html, "lxml")

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...

    @abstractmethod
    def resolve(self, metadata: ProductMetadata) -> list[ListingResult]:
        """Find marketplace listings matching *metadata*."""
        ...
