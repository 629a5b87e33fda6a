# main.py

"""Entry point for product_finder (pipeline run, webhook server, tools)."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings

logger = logging.getLogger("product_finder.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="product_finder",
        description=(
            "Analyse product photos and match them to "
            "MercadoLibre listings."
        ),
    )
    parser.add_argument(
        "--dropbox",
        action="store_true",
        default=Settings.USE_DROPBOX,
        help="Read images from Dropbox instead of the local images/ dir.",
    )
    parser.add_argument(
        "--folder",
        default=None,
        help="Dropbox folder to process (default: DROPBOX_FOLDER).",
    )
    parser.add_argument(
        "--images-dir",
        default=None,
        dest="images_dir",
        help="Local images directory (default: images/).",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Run the Dropbox webhook server.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Webhook server port (default: WEBHOOK_PORT or 3000).",
    )
    parser.add_argument(
        "--publish",
        action="store_true",
        default=False,
        help="Only rebuild the public snapshot from the catalog.",
    )
    parser.add_argument(
        "--setup-webhook",
        action="store_true",
        default=False,
        dest="setup_webhook",
        help="Print a starting cursor and webhook setup instructions.",
    )
    return parser


def _run_pipeline(args: argparse.Namespace) -> None:
    """Process the selected image source once and exit."""
    from src.cli.runner import run_pipeline

    if args.dropbox:
        exit_code = asyncio.run(run_pipeline("dropbox", args.folder))
    else:
        exit_code = asyncio.run(run_pipeline("local", args.images_dir))
    sys.exit(exit_code)


def _run_server(args: argparse.Namespace) -> None:
    """Serve the webhook until interrupted."""
    from src.cli.runner import run_server

    try:
        exit_code = run_server(args.port)
    except Exception:
        logger.critical("Fatal error in webhook server", exc_info=True)
        raise
    finally:
        logger.info("product_finder webhook server shutting down")
    sys.exit(exit_code)


def _run_publish() -> None:
    """Rebuild the public snapshot and exit."""
    from src.cli.runner import publish_snapshot
    from src.storage.catalog_store import CatalogStore

    sys.exit(publish_snapshot(CatalogStore()))


def _run_setup_webhook() -> None:
    """Print webhook setup information and exit."""
    from src.cli.runner import run_setup_webhook

    sys.exit(run_setup_webhook())


def _launch_mode(args: argparse.Namespace) -> str:
    """Name of the mode *args* select, used to tag the launch's log."""
    if args.serve:
        return "serve"
    if args.publish:
        return "publish"
    if args.setup_webhook:
        return "setup-webhook"
    return "dropbox" if args.dropbox else "local"


def main() -> None:
    """Route to the requested mode (default: one pipeline run)."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(_launch_mode(args))
    logger.info("product_finder starting, log file: %s", log_file)

    if args.serve:
        _run_server(args)
    elif args.publish:
        _run_publish()
    elif args.setup_webhook:
        _run_setup_webhook()
    else:
        _run_pipeline(args)


if __name__ == "__main__":
    main()
