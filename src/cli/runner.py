# src/cli/runner.py

"""Headless CLI entry points: pipeline runs, snapshot, webhook server."""

import logging

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.imaging.image_normalizer import ImageNormalizer
from src.scrapers.mercadolibre_scraper import MercadoLibreResolver
from src.services.exceptions import ProductFinderError, SourceUnavailable
from src.services.pipeline_orchestrator import (
    PipelineOrchestrator,
    RunResult,
    build_source,
    default_root,
)
from src.storage.catalog_store import CatalogStore
from src.vision.product_analyzer import ProductAnalyzer

logger = logging.getLogger("product_finder.cli")

# Stderr console for status messages so stdout stays clean
_err = Console(stderr=True)


def build_orchestrator(store: CatalogStore) -> PipelineOrchestrator:
    """Wire the orchestrator with the production collaborators."""
    return PipelineOrchestrator(
        store=store,
        analyzer=ProductAnalyzer(),
        resolver=MercadoLibreResolver(),
        normalizer=ImageNormalizer(),
    )


def _print_summary(result: RunResult) -> None:
    """Render a Rich table summarising a run."""
    table = Table(
        title=f"Run summary ({result.source})",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Candidates", justify="right")
    table.add_column("Processed", justify="right", style="green")
    table.add_column("Reused", justify="right", style="cyan")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(
        str(result.candidates),
        str(result.processed),
        str(result.reused),
        str(result.failed),
    )
    _err.print(table)
    for error_msg in result.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")


def publish_snapshot(store: CatalogStore) -> int:
    """Rebuild the public snapshot from the catalog."""
    try:
        snapshot = store.publish_snapshot()
    except ProductFinderError as exc:
        logger.error("Snapshot publish failed: %s", exc, exc_info=True)
        _err.print(f"[red]Snapshot publish failed: {exc}[/red]")
        return 1
    _err.print(
        f"[dim]Published {snapshot.count} products → "
        f"{store.snapshot_path}[/dim]"
    )
    return 0


async def run_pipeline(source_id: str, root: str | None = None) -> int:
    """Run the pipeline once against *source_id* (0=ok, 1=fail)."""
    store = CatalogStore()
    if publish_snapshot(store) != 0:
        return 1

    root = default_root(source_id) if root is None else root
    try:
        source = build_source(source_id)
        orchestrator = build_orchestrator(store)
        _err.print(
            f"[bold]Processing:[/bold] {source_id} "
            f"[dim]root={root or '/'}[/dim]"
        )
        result = await orchestrator.run(source, root)
    except SourceUnavailable as exc:
        logger.error("Run aborted: %s", exc, exc_info=True)
        _err.print(f"[red]Run aborted: {exc}[/red]")
        return 1

    _print_summary(result)
    _err.print("[green]✓ Processing completed[/green]")
    return 0


def run_server(port: int | None = None) -> int:
    """Serve the Dropbox webhook until interrupted."""
    import uvicorn

    from src.api.webhook_app import create_app
    from src.services.change_listener import ChangeListener
    from src.services.run_scheduler import RunScheduler
    from src.sources.dropbox_source import DropboxSource

    if not Settings.DROPBOX_WEBHOOK_SECRET:
        logger.warning(
            "DROPBOX_WEBHOOK_SECRET not set, webhook verification will fail"
        )
        _err.print(
            "[yellow]DROPBOX_WEBHOOK_SECRET not set! "
            "Webhook verification will fail.[/yellow]"
        )

    try:
        source = DropboxSource()
    except SourceUnavailable as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    store = CatalogStore()
    publish_snapshot(store)
    orchestrator = build_orchestrator(store)
    folder = Settings.DROPBOX_FOLDER

    async def _run() -> RunResult:
        return await orchestrator.run(source, folder)

    listener = ChangeListener(
        secret=Settings.DROPBOX_WEBHOOK_SECRET,
        source=source,
        monitored_folder=folder,
        scheduler=RunScheduler(_run),
    )
    port = port or Settings.WEBHOOK_PORT
    _err.print(f"[bold]Webhook server running on port {port}[/bold]")
    _err.print(f"[dim]Webhook URL: http://localhost:{port}/webhook[/dim]")
    _err.print(f"[dim]Health check: http://localhost:{port}/health[/dim]")
    uvicorn.run(create_app(listener), host="0.0.0.0", port=port)
    return 0


def run_setup_webhook() -> int:
    """Print a starting cursor and the webhook configuration steps."""
    from src.sources.dropbox_source import DropboxSource

    webhook_url = Settings.WEBHOOK_URL
    if not webhook_url:
        _err.print(
            "[red]WEBHOOK_URL is required "
            "(e.g., https://yourdomain.com/webhook)[/red]"
        )
        return 1

    folder = Settings.DROPBOX_FOLDER
    try:
        source = DropboxSource()
        _err.print(f"[bold]Creating cursor for folder:[/bold] {folder or '/'}")
        entries, _ = source.list_entries(folder)
        cursor = source.latest_cursor(folder)
    except SourceUnavailable as exc:
        logger.error("Webhook setup failed: %s", exc, exc_info=True)
        _err.print(f"[red]Error setting up webhook: {exc}[/red]")
        return 1

    _err.print(f"Found {len(entries)} existing entries")
    _err.print(f"[dim]Current cursor: {cursor}[/dim]")
    _err.print("\n[bold]Webhook setup:[/bold]")
    _err.print(
        "1. Go to your Dropbox App Console: "
        "https://www.dropbox.com/developers/apps"
    )
    _err.print("2. Select your app")
    _err.print('3. Go to the "Webhooks" tab')
    _err.print(f"4. Add webhook URL: {webhook_url}")
    _err.print("5. Save the configuration")
    _err.print("\n[bold]Environment variables needed:[/bold]")
    _err.print(f"WEBHOOK_URL={webhook_url}")
    _err.print("DROPBOX_WEBHOOK_SECRET=<secret_from_app_console>")
    _err.print(f"WEBHOOK_PORT={Settings.WEBHOOK_PORT}")
    return 0
