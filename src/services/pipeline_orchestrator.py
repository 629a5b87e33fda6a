# src/services/pipeline_orchestrator.py

"""Drives images from a source through analysis into the catalog."""

import asyncio
import importlib
import logging
import shutil
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Protocol

from src.config.settings import Settings
from src.imaging.image_normalizer import ImageNormalizer
from src.models.catalog_entry import CatalogEntry
from src.models.image_candidate import ImageCandidate, guess_mime_type
from src.models.product import ListingResult, ProductMetadata
from src.services.exceptions import ProductFinderError
from src.sources.base_source import BaseSource
from src.storage.catalog_store import CatalogStore

logger = logging.getLogger("product_finder.orchestrator")


class Classifier(Protocol):
    """Anything that turns image bytes into product metadata."""

    async def classify(
        self, image_bytes: bytes, mime_type: str,
    ) -> ProductMetadata: ...


class Resolver(Protocol):
    """Anything that turns product metadata into marketplace listings."""

    def resolve(self, metadata: ProductMetadata) -> list[ListingResult]: ...


@dataclass
class RunResult:
    """Outcome counters for one pipeline run."""

    source: str
    candidates: int = 0
    processed: int = 0
    reused: int = 0
    failed: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )


def _load_source_class(dotted_path: str) -> type[Any]:
    """Dynamically import a source class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def build_source(source_id: str) -> BaseSource:
    """Instantiate the registered source with id *source_id*."""
    for src in Settings.AVAILABLE_SOURCES:
        if src["id"] == source_id:
            source: BaseSource = _load_source_class(src["source"])()
            return source
    valid = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)
    msg = f"Unknown source '{source_id}' (available: {valid})"
    raise ValueError(msg)


def default_root(source_id: str) -> str:
    """Default root to enumerate for a source."""
    if source_id == "dropbox":
        return Settings.DROPBOX_FOLDER
    return str(Settings.IMAGES_DIR)


def select_representatives(
    candidates: list[ImageCandidate],
) -> list[ImageCandidate]:
    """Keep the first candidate of each product group, in order."""
    seen: set[str] = set()
    selected: list[ImageCandidate] = []
    for candidate in candidates:
        if candidate.group in seen:
            continue
        seen.add(candidate.group)
        selected.append(candidate)
    return selected


class PipelineOrchestrator:
    """Runs Enumerate → FilterNew → Stage → Normalize → Classify →
    Resolve → Upsert, one candidate at a time.

    Only a failure to enumerate the source aborts a run.  Any failure
    while handling a single candidate is logged and the candidate is left
    out of the catalog, so the next run picks it up again.
    """

    def __init__(
        self,
        store: CatalogStore,
        analyzer: Classifier,
        resolver: Resolver,
        normalizer: ImageNormalizer | None = None,
        temp_root: Path | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.resolver = resolver
        self.normalizer = normalizer or ImageNormalizer()
        self.temp_root = temp_root or Settings.TEMP_DIR

    # ── Private helpers ──────────────────────────────────

    @staticmethod
    def _log_listings(listings: list[ListingResult]) -> None:
        """Summarise a listing set in the run log."""
        if not listings:
            logger.info("No products found in MercadoLibre")
            return
        logger.info("Found %d product(s):", len(listings))
        for idx, listing in enumerate(listings, 1):
            logger.info(
                "%d. %s | $%d | %s | %s",
                idx,
                listing.title,
                listing.price,
                listing.permalink,
                listing.condition.value,
            )

    async def _process_candidate(
        self,
        source: BaseSource,
        candidate: ImageCandidate,
        staging_dir: Path,
    ) -> CatalogEntry:
        """Stage, normalise, classify, resolve and save one candidate."""
        staged = await asyncio.to_thread(
            source.stage, candidate, staging_dir
        )
        candidate = replace(candidate, local_staging_path=staged)

        normalized = await asyncio.to_thread(
            self.normalizer.normalize,
            staged,
            staging_dir / "normalized" / candidate.group
            / candidate.display_name,
        )
        image_bytes = await asyncio.to_thread(normalized.read_bytes)

        logger.info("Analyzing image: %s", candidate.display_name)
        metadata = await self.analyzer.classify(
            image_bytes, guess_mime_type(normalized.name)
        )

        logger.info("Searching MercadoLibre for %s", candidate.group)
        listings = await asyncio.to_thread(
            self.resolver.resolve, metadata
        )

        entry = CatalogEntry(
            image_path=candidate.storage_path,
            product_metadata=metadata,
            listings=listings,
        )
        await asyncio.to_thread(self.store.upsert, entry)
        self._log_listings(listings)
        return entry

    # ── Public API ───────────────────────────────────────

    async def run(self, source: BaseSource, root: str) -> RunResult:
        """Process every new product group found under *root*.

        Raises:
            SourceUnavailable: the source could not be enumerated.
        """
        result = RunResult(source=source.source_kind.value)
        logger.info(
            "Starting %s run on %s",
            source.source_kind.value,
            root or "/",
        )

        candidates = select_representatives(
            await asyncio.to_thread(source.list_candidates, root)
        )
        result.candidates = len(candidates)
        if not candidates:
            logger.info("No product folders found")
            return result

        self.temp_root.mkdir(parents=True, exist_ok=True)
        staging_dir = Path(
            tempfile.mkdtemp(prefix="run-", dir=self.temp_root)
        )
        try:
            for candidate in candidates:
                logger.info(
                    "Processing product: %s (%s)",
                    candidate.group,
                    candidate.source_path,
                )

                try:
                    existing = await asyncio.to_thread(
                        self.store.find_processed, candidate
                    )
                    if existing is not None:
                        logger.info(
                            "Found existing analysis for %s under %s, "
                            "using cached data",
                            candidate.storage_path,
                            existing.image_path,
                        )
                        self._log_listings(existing.listings)
                        result.reused += 1
                        continue

                    await self._process_candidate(
                        source, candidate, staging_dir
                    )
                    result.processed += 1
                except ProductFinderError as exc:
                    result.failed += 1
                    result.errors.append(
                        f"{candidate.source_path}: {exc}"
                    )
                    logger.error(
                        "Skipping %s after %s: %s",
                        candidate.source_path,
                        exc.code,
                        exc,
                        exc_info=True,
                    )
                except Exception as exc:
                    result.failed += 1
                    result.errors.append(
                        f"{candidate.source_path}: {exc}"
                    )
                    logger.error(
                        "Unexpected error processing %s: %s",
                        candidate.source_path,
                        exc,
                        exc_info=True,
                    )
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)
            logger.debug("Cleaned up staging directory %s", staging_dir)

        logger.info(
            "Run finished: %d candidates, %d processed, "
            "%d reused, %d failed",
            result.candidates,
            result.processed,
            result.reused,
            result.failed,
        )
        return result
