# src/config/settings.py

"""Central configuration for the product_finder pipeline."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the product_finder pipeline."""

    # --- Scraping ---
    REQUEST_DELAY: float = 2.0          # Seconds between requests
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    RESULTS_TIMEOUT: int = 15           # Bound on the search results fetch
    MAX_RETRIES: int = 3                # Retry count on transient failures

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 60.0  # Secs before half-open probe
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Marketplace ---
    MARKETPLACE_HOMEPAGE: str = "https://www.mercadolibre.com.ar/"
    MARKETPLACE_SEARCH_URL: str = (
        "https://listado.mercadolibre.com.ar/{query}"
    )
    MAX_LISTINGS: int = 5               # Listings kept per product
    USED_TOKEN: str = "usado"           # Subtitle marker for used items

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "es-AR,es;q=0.9,en;q=0.8",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"macOS"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Imaging ---
    MAX_DIMENSION: int = 720            # Longest side after normalising
    JPEG_QUALITY: int = 85
    IMAGE_EXTENSIONS: frozenset[str] = frozenset({
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp",
    })

    # --- Vision ---
    CLAUDE_API_KEY: str = os.getenv("CLAUDE_API_KEY", "")
    VISION_MODEL: str = os.getenv(
        "VISION_MODEL", "claude-3-5-sonnet-20241022"
    )
    VISION_MAX_TOKENS: int = 1000

    # --- Dropbox ---
    DROPBOX_ACCESS_TOKEN: str = os.getenv("DROPBOX_ACCESS_TOKEN", "")
    DROPBOX_FOLDER: str = os.getenv("DROPBOX_FOLDER", "")
    DROPBOX_WEBHOOK_SECRET: str = os.getenv(
        "DROPBOX_WEBHOOK_SECRET", ""
    )
    DROPBOX_API_URL: str = "https://api.dropboxapi.com/2"
    DROPBOX_CONTENT_URL: str = "https://content.dropboxapi.com/2"
    USE_DROPBOX: bool = os.getenv("USE_DROPBOX", "") == "true"

    # --- Webhook ---
    WEBHOOK_PORT: int = int(os.getenv("WEBHOOK_PORT", "3000"))
    WEBHOOK_URL: str = os.getenv("WEBHOOK_URL", "")
    DEBOUNCE_SECONDS: float = 2.0       # Coalesce bursts of notifications

    # --- Sources (registry of interchangeable image sources) ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "local",
            "label": "Local folder",
            "source": "src.sources.local_source.LocalSource",
        },
        {
            "id": "dropbox",
            "label": "Dropbox",
            "source": "src.sources.dropbox_source.DropboxSource",
        },
    ]

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "src" / "config" / "selectors.json"
    IMAGES_DIR: Path = BASE_DIR / "images"
    DATA_DIR: Path = BASE_DIR / "data"
    CATALOG_PATH: Path = DATA_DIR / "products.json"
    PUBLIC_DIR: Path = BASE_DIR / "public"
    SNAPSHOT_PATH: Path = PUBLIC_DIR / "data" / "products.json"
    TEMP_DIR: Path = BASE_DIR / "temp-images"
    LOGS_DIR: Path = BASE_DIR / "logs"
