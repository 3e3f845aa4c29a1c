"""FastAPI application factory and pipeline wiring."""

from fastapi import FastAPI, Request, Response

from wacrm.config import Settings, load_settings
from wacrm.domain.ingestion import WebhookIngestor
from wacrm.infra.gateway import PostgresGateway
from wacrm.infra.media_store import HttpMediaStore
from wacrm.observability.correlation import (
    CORRELATION_ID_HEADER,
    reset_correlation_id,
    resolve_correlation_id,
    set_correlation_id,
)
from wacrm.observability.logging import get_logger, set_log_level
from wacrm.observability.redaction import safe_log_context

from .routes import webhooks_uazapi

logger = get_logger(__name__)


def build_ingestor(settings: Settings) -> WebhookIngestor:
    """Wire the ingestion pipeline to Postgres and, if configured, the media store."""
    gateway = PostgresGateway(settings.database_url, password=settings.db_password or None)
    media_store = HttpMediaStore.from_settings(settings) if settings.media_store_url else None

    logger.info(
        "ingestion pipeline configured",
        extra={
            "extra_fields": safe_log_context(
                database_configured=bool(settings.database_url),
                media_store_configured=media_store is not None,
                filter_api_echoes=settings.filter_api_echoes,
                filter_self_sent=settings.filter_self_sent,
            )
        },
    )
    return WebhookIngestor(
        instances=gateway,
        gateway=gateway,
        media_store=media_store,
        settings=settings,
    )


def create_app(
    settings: Settings | None = None,
    ingestor: WebhookIngestor | None = None,
) -> FastAPI:
    """Create the FastAPI app.

    Args:
        settings: Explicit settings. If None, read from the environment.
        ingestor: Pre-built pipeline (tests inject one). If None, built
                  from ``settings``.

    Returns:
        Configured FastAPI application.
    """
    if ingestor is None and settings is None:
        settings = load_settings()
    if settings is not None:
        set_log_level(settings.log_level)
    if ingestor is None:
        ingestor = build_ingestor(settings)

    app = FastAPI(
        title="WhatsApp CRM webhook ingestion",
        docs_url=None,
        redoc_url=None,
    )
    app.state.ingestor = ingestor

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    @app.get("/health")
    def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    app.include_router(webhooks_uazapi.router)

    return app
