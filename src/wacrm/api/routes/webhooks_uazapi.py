"""UAZAPI webhook routes.

Every POST is acknowledged with HTTP 200, including rejected and failed
deliveries; the body says what happened. UAZAPI redelivers on non-2xx and
none of our failures would resolve by retrying.

Legacy per-company URLs (``/webhooks/uazapi/<anything>``) land on the same
handler; the company is always resolved from the payload's instance name.
"""

from typing import Any

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from wacrm.domain.ingestion import WebhookIngestor
from wacrm.observability.logging import get_logger
from wacrm.observability.redaction import safe_log_context

router = APIRouter(prefix="/webhooks/uazapi", tags=["webhooks"])

logger = get_logger(__name__)

ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
}


class WebhookResponse(BaseModel):
    """Acknowledgement body for a webhook delivery."""

    success: bool
    message_id: str | None = None
    contact_id: str | None = None
    conversation_id: str | None = None
    duplicate: bool | None = None
    filtered: bool | None = None
    error: str | None = None


def _get_ingestor(request: Request) -> WebhookIngestor:
    """Get the ingestion pipeline (allows test injection via app.state)."""
    return request.app.state.ingestor


def _respond(body: WebhookResponse, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers={**CORS_HEADERS, **NO_CACHE_HEADERS},
    )


async def _handle(request: Request) -> Response:
    if request.method == "OPTIONS":
        return Response(status_code=200, headers={**CORS_HEADERS, **NO_CACHE_HEADERS})

    if request.method != "POST":
        return _respond(WebhookResponse(success=False, error="Use POST"), status_code=405)

    try:
        body: Any = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(path=request.url.path)},
        )
        return _respond(WebhookResponse(success=False, error="invalid json body"))

    ingestor = _get_ingestor(request)
    result = await run_in_threadpool(ingestor.ingest, body)
    return _respond(WebhookResponse(**result.to_response()))


@router.api_route("", methods=ALLOWED_METHODS)
async def uazapi_webhook(request: Request) -> Response:
    """Receive a UAZAPI message event.

    Returns:
        200 with the ingestion outcome for POST (always).
        200 with CORS headers for OPTIONS.
        405 for any other method.
    """
    return await _handle(request)


@router.api_route("/{subpath:path}", methods=ALLOWED_METHODS)
async def uazapi_webhook_subpath(request: Request, subpath: str) -> Response:
    """Same handler mounted under any path suffix."""
    return await _handle(request)
