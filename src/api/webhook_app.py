# src/api/webhook_app.py

"""FastAPI app exposing the Dropbox webhook and a health check."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from src.services.change_listener import ChangeListener
from src.services.exceptions import (
    InvalidSignature,
    MalformedNotification,
    MissingSignature,
)

logger = logging.getLogger("product_finder.api")

SIGNATURE_HEADERS: tuple[str, ...] = ("X-Dropbox-Signature", "X-Signature")


def create_app(listener: ChangeListener) -> FastAPI:
    """Create the webhook application around *listener*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Log startup; let an in-flight run finish on shutdown."""
        logger.info(
            "Webhook server starting, monitored folder: %s",
            listener.monitored_folder or "root",
        )
        app.state.listener = listener
        yield
        if listener.scheduler.busy:
            logger.info("Waiting for in-flight run before shutdown")
            await listener.scheduler.wait_idle()
        logger.info("Webhook server shutting down")

    app = FastAPI(
        title="product_finder webhook",
        description="Dropbox change notifications for the product catalog",
        lifespan=lifespan,
    )

    @app.get("/webhook", response_class=PlainTextResponse)
    async def verify_webhook(challenge: str | None = None) -> PlainTextResponse:
        """Echo the verification challenge."""
        if not challenge:
            return PlainTextResponse(
                "Missing challenge parameter", status_code=400
            )
        logger.info("Webhook verification received")
        return PlainTextResponse(
            challenge,
            headers={"X-Content-Type-Options": "nosniff"},
        )

    @app.post("/webhook", response_class=PlainTextResponse)
    async def receive_notification(request: Request) -> PlainTextResponse:
        """Validate a change notification and schedule a run if needed."""
        body = await request.body()
        signature = next(
            (
                request.headers[h]
                for h in SIGNATURE_HEADERS
                if h in request.headers
            ),
            None,
        )
        try:
            await listener.handle_notification(body, signature)
        except MissingSignature as exc:
            logger.warning("Rejected notification: %s", exc)
            return PlainTextResponse(exc.message, status_code=400)
        except InvalidSignature as exc:
            logger.warning("Rejected notification: %s", exc)
            return PlainTextResponse(exc.message, status_code=403)
        except MalformedNotification as exc:
            logger.warning("Rejected notification: %s", exc)
            return PlainTextResponse(exc.message, status_code=400)
        return PlainTextResponse("OK")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Liveness probe."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "monitoredFolder": listener.monitored_folder or "root",
        }

    return app
