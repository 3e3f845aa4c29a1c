"""Webhook ingestion orchestrator.

One delivery walks these stages:

    received -> unwrapped -> filtered -> direction_resolved -> phone_resolved
    -> media_resolved -> identity_resolved -> duplicate_checked -> persisted

and ends in one of four outcomes: success, filtered, duplicate, error.
Every outcome is acknowledged with HTTP 200. Retrying cannot fix any of
these failures, and a non-2xx answer makes the provider redeliver in a
loop, so errors surface through logs only.

Media is fetched after the duplicate check so redeliveries never download
or upload the same attachment twice. A media store failure never drops the
message: the row is stored without a media URL and the delivery ends in an
error outcome that still carries the message id.

Names come from the CRM lead registered for the phone first, then from the
event itself.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from wacrm.config import Settings
from wacrm.infra.time import utc_now
from wacrm.observability.logging import get_logger
from wacrm.observability.redaction import id_prefix, phone_tail, safe_log_context
from wacrm.whatsapp.direction import resolve_direction, resolve_origin
from wacrm.whatsapp.envelope import decode_event
from wacrm.whatsapp.filters import FilterReason, evaluate
from wacrm.whatsapp.media import MediaResolution, resolve_media
from wacrm.whatsapp.models import Direction, InboundEvent
from wacrm.whatsapp.phone import select_phone

from .errors import (
    IngestionError,
    InstanceNotFoundError,
    InvalidPhoneNumberError,
    MediaFetchError,
    PersistenceError,
)
from .idempotency import IdempotencyGuard
from .identity import IdentityResolver, ResolvedIdentity, fallback_contact_name
from .ports import InstanceLookup, InstanceRecord, MediaStore, NewMessage, PersistenceGateway

logger = get_logger(__name__)

INTERNAL_ERROR_CODE = "internal_error"

STATUS_BY_DIRECTION: dict[str, str] = {
    "inbound": "delivered",
    "outbound": "sent",
}


class Stage(str, Enum):
    RECEIVED = "received"
    UNWRAPPED = "unwrapped"
    FILTERED = "filtered"
    DIRECTION_RESOLVED = "direction_resolved"
    PHONE_RESOLVED = "phone_resolved"
    MEDIA_RESOLVED = "media_resolved"
    IDENTITY_RESOLVED = "identity_resolved"
    DUPLICATE_CHECKED = "duplicate_checked"
    PERSISTED = "persisted"


class Outcome(str, Enum):
    SUCCESS = "success"
    FILTERED = "filtered"
    DUPLICATE = "duplicate"
    ERROR = "error"


@dataclass(frozen=True)
class IngestionResult:
    """Terminal outcome of one delivery.

    Attributes:
        outcome: success | filtered | duplicate | error.
        stage: Last stage reached.
        message_id: Persisted (or pre-existing) message id.
        contact_id: Resolved contact id.
        conversation_id: Resolved conversation id.
        code: Filter reason or error code.
        error: Human-readable reason for filtered/error outcomes.
    """

    outcome: Outcome
    stage: Stage
    message_id: str | None = None
    contact_id: str | None = None
    conversation_id: str | None = None
    code: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome in (Outcome.SUCCESS, Outcome.DUPLICATE)

    def to_response(self) -> dict[str, Any]:
        """Webhook response body (absent fields omitted)."""
        body: dict[str, Any] = {"success": self.success}
        if self.message_id is not None:
            body["message_id"] = self.message_id
        if self.contact_id is not None:
            body["contact_id"] = self.contact_id
        if self.conversation_id is not None:
            body["conversation_id"] = self.conversation_id
        if self.outcome == Outcome.DUPLICATE:
            body["duplicate"] = True
        if self.outcome == Outcome.FILTERED:
            body["filtered"] = True
        if self.error is not None:
            body["error"] = self.error
        return body


class _Trace:
    """Mutable stage tracker for one run."""

    def __init__(self) -> None:
        self.stage = Stage.RECEIVED
        self.provider_message_id: str | None = None

    def advance(self, stage: Stage) -> None:
        self.stage = stage


class WebhookIngestor:
    """Compose the pipeline over injected collaborators.

    Args:
        instances: Instance/company lookup.
        gateway: Persistence gateway.
        media_store: Media store, or None to skip media persistence.
        settings: Filter toggles and the contact source tag.
    """

    def __init__(
        self,
        *,
        instances: InstanceLookup,
        gateway: PersistenceGateway,
        media_store: MediaStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._instances = instances
        self._gateway = gateway
        self._media_store = media_store
        self._identity = IdentityResolver(gateway, source_tag=self._settings.contact_source_tag)
        self._guard = IdempotencyGuard(gateway)

    def ingest(self, body: Any) -> IngestionResult:
        """Run one webhook body through the pipeline. Never raises."""
        trace = _Trace()
        try:
            return self._run(body, trace)
        except IngestionError as exc:
            logger.warning(
                "webhook ingestion failed",
                extra={
                    "extra_fields": safe_log_context(
                        code=exc.code,
                        stage=trace.stage.value,
                        message_id_prefix=id_prefix(trace.provider_message_id),
                    )
                },
            )
            return IngestionResult(
                outcome=Outcome.ERROR,
                stage=trace.stage,
                code=exc.code,
                error=exc.message,
            )
        except Exception:
            logger.exception(
                "unexpected webhook ingestion failure",
                extra={
                    "extra_fields": safe_log_context(
                        stage=trace.stage.value,
                        message_id_prefix=id_prefix(trace.provider_message_id),
                    )
                },
            )
            return IngestionResult(
                outcome=Outcome.ERROR,
                stage=trace.stage,
                code=INTERNAL_ERROR_CODE,
                error="internal error",
            )

    def _run(self, body: Any, trace: _Trace) -> IngestionResult:
        event = decode_event(body)
        message = event.message
        trace.provider_message_id = message.id
        trace.advance(Stage.UNWRAPPED)

        decision = evaluate(
            event,
            filter_api_echoes=self._settings.filter_api_echoes,
            filter_self_sent=self._settings.filter_self_sent,
        )
        trace.advance(Stage.FILTERED)
        if not decision.accepted:
            return self._filtered(trace, decision.reason, decision.description)

        direction = resolve_direction(message.from_me, message.was_sent_by_api, message.device_sent)
        trace.advance(Stage.DIRECTION_RESOLVED)

        phone = select_phone(event, direction)
        if not phone:
            raise InvalidPhoneNumberError("invalid phone number")
        trace.advance(Stage.PHONE_RESOLVED)

        media = resolve_media(message)
        trace.advance(Stage.MEDIA_RESOLVED)

        instance = self._resolve_instance(event.instance_name)

        lead_name = self._lead_name(instance.company_id, phone, message.id)
        display_name = lead_name or _display_name(event, direction)
        timestamp = message.timestamp or utc_now()
        identity = self._identity.resolve(
            company_id=instance.company_id,
            instance_id=instance.instance_id,
            phone=phone,
            display_name=display_name,
            avatar_url=event.chat.image_preview or None,
            timestamp=timestamp,
        )
        trace.advance(Stage.IDENTITY_RESOLVED)

        existing = self._guard.existing_message(message.id)
        trace.advance(Stage.DUPLICATE_CHECKED)
        if existing is not None:
            return self._duplicate(trace, existing.message_id, identity)

        media_error: MediaFetchError | None = None
        try:
            content, media_url = self._store_media(instance, message.id, media)
        except MediaFetchError as exc:
            media_error = exc
            content, media_url = media.content or media.placeholder, None
            logger.warning(
                "media not stored - persisting message without media",
                extra={
                    "extra_fields": safe_log_context(
                        code=exc.code,
                        reason=exc.message,
                        message_id_prefix=id_prefix(message.id),
                        message_type=media.message_type,
                    )
                },
            )

        message_id, created = self._gateway.insert_message(
            NewMessage(
                provider_message_id=message.id,
                conversation_id=identity.conversation_id,
                company_id=instance.company_id,
                instance_id=instance.instance_id,
                content=content,
                message_type=media.message_type,
                direction=direction,
                sender_name=_sender_name(event, direction, display_name, phone),
                sender_phone=phone,
                media_url=media_url,
                timestamp=timestamp,
                status=STATUS_BY_DIRECTION[direction],
            )
        )
        if not created:
            # A concurrent delivery of the same id won the insert
            return self._duplicate(trace, message_id, identity)
        trace.advance(Stage.PERSISTED)

        logger.info(
            "webhook message persisted",
            extra={
                "extra_fields": safe_log_context(
                    message_id_prefix=id_prefix(message.id),
                    direction=direction,
                    origin=resolve_origin(
                        message.from_me, message.was_sent_by_api, message.device_sent
                    ),
                    message_type=media.message_type,
                    has_media_url=media_url is not None,
                    lead_name_used=bool(lead_name),
                    phone_tail=phone_tail(phone),
                    envelope=event.shape.value,
                )
            },
        )
        if media_error is not None:
            return IngestionResult(
                outcome=Outcome.ERROR,
                stage=trace.stage,
                message_id=message_id,
                contact_id=identity.contact_id,
                conversation_id=identity.conversation_id,
                code=media_error.code,
                error=media_error.message,
            )
        return IngestionResult(
            outcome=Outcome.SUCCESS,
            stage=trace.stage,
            message_id=message_id,
            contact_id=identity.contact_id,
            conversation_id=identity.conversation_id,
        )

    def _resolve_instance(self, instance_name: str) -> InstanceRecord:
        if not instance_name:
            raise InstanceNotFoundError("instance name missing from payload")
        instance = self._instances.resolve_instance(instance_name)
        if instance is None:
            raise InstanceNotFoundError(f"instance not found: {instance_name}")
        return instance

    def _lead_name(self, company_id: str, phone: str, provider_message_id: str) -> str:
        """Name of the CRM lead registered for this phone, "" if none.

        The lookup is advisory: a failure falls back to the observed names.
        """
        try:
            return self._gateway.find_lead_name(company_id, phone) or ""
        except PersistenceError as exc:
            logger.warning(
                "lead name lookup failed",
                extra={
                    "extra_fields": safe_log_context(
                        code=exc.code,
                        message_id_prefix=id_prefix(provider_message_id),
                    )
                },
            )
            return ""

    def _store_media(
        self,
        instance: InstanceRecord,
        provider_message_id: str,
        media: MediaResolution,
    ) -> tuple[str, str | None]:
        """Return (content, media_url) for the message row.

        Raises:
            MediaFetchError: If the media store fails.
        """
        if not media.is_media or media.source_url is None:
            return media.content, None

        if self._media_store is None:
            logger.info(
                "media store not configured - storing placeholder only",
                extra={
                    "extra_fields": safe_log_context(
                        message_id_prefix=id_prefix(provider_message_id),
                        message_type=media.message_type,
                    )
                },
            )
            return media.placeholder, None

        try:
            stored_url = self._media_store.persist_media(
                instance.company_id,
                provider_message_id,
                media.source_url,
                media,
            )
        except MediaFetchError:
            raise
        except Exception as exc:
            raise MediaFetchError(f"media store failed: {type(exc).__name__}") from exc

        return media.placeholder, stored_url

    def _filtered(
        self,
        trace: _Trace,
        reason: FilterReason | None,
        description: str,
    ) -> IngestionResult:
        logger.info(
            "webhook event filtered",
            extra={
                "extra_fields": safe_log_context(
                    reason=reason,
                    message_id_prefix=id_prefix(trace.provider_message_id),
                )
            },
        )
        return IngestionResult(
            outcome=Outcome.FILTERED,
            stage=trace.stage,
            code=reason.value if reason else None,
            error=description,
        )

    def _duplicate(
        self,
        trace: _Trace,
        message_id: str,
        identity: ResolvedIdentity,
    ) -> IngestionResult:
        return IngestionResult(
            outcome=Outcome.DUPLICATE,
            stage=trace.stage,
            message_id=message_id,
            contact_id=identity.contact_id,
            conversation_id=identity.conversation_id,
        )


def _display_name(event: InboundEvent, direction: Direction) -> str:
    """Customer name observed on this event, "" if none.

    On outbound messages senderName is the business user, so only the chat
    metadata names the customer.
    """
    if direction == "outbound":
        return event.chat.name or event.chat.contact_name
    return event.message.sender_name or event.chat.name or event.chat.contact_name


def _sender_name(event: InboundEvent, direction: Direction, display_name: str, phone: str) -> str:
    """Author name stored on the message row.

    Outbound messages are authored by the business user named in
    senderName; inbound ones by the customer.
    """
    if direction == "outbound" and event.message.sender_name:
        return event.message.sender_name
    return display_name or fallback_contact_name(phone)
