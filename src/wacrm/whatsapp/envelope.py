"""UAZAPI adapter - unwrap delivery envelopes and decode the inner event.

The provider (directly, or relayed through an automation tool) delivers the
same event in three envelopes:

- batched:     ``[{"body": {...event...}, "headers": {...}}]``
- nested body: ``{"body": {...event...}}``
- direct:      ``{...event...}``

The shape is detected per request, so a single endpoint serves every
delivery mode.
"""

from datetime import datetime, timezone
from typing import Any

from wacrm.domain.errors import UnrecognizedPayloadError

from .models import ChatPayload, EnvelopeShape, InboundEvent, MediaContent, MessagePayload

MESSAGES_EVENT = "messages"

# messageTimestamp above this is in milliseconds
_MILLIS_THRESHOLD = 10**12


def unwrap_envelope(body: Any) -> tuple[EnvelopeShape, dict[str, Any]]:
    """Detect the envelope shape and return the inner event object.

    Raises:
        UnrecognizedPayloadError: If no event object can be extracted.
    """
    if isinstance(body, list):
        if body and isinstance(body[0], dict) and isinstance(body[0].get("body"), dict):
            return EnvelopeShape.BATCHED, body[0]["body"]
        raise UnrecognizedPayloadError("batched envelope without body")

    if not isinstance(body, dict):
        raise UnrecognizedPayloadError("payload is not a JSON object")

    inner = body.get("body")
    if isinstance(inner, dict):
        return EnvelopeShape.NESTED_BODY, inner

    return EnvelopeShape.DIRECT, body


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        # chat.phone sometimes arrives as a number
        return str(int(value))
    return ""


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    seconds = value / 1000 if value >= _MILLIS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _file_length(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _decode_media_content(content: dict[str, Any]) -> MediaContent:
    return MediaContent(
        url=_text(content.get("URL")) or _text(content.get("url")),
        mimetype=_text(content.get("mimetype")),
        media_key=_text(content.get("mediaKey")),
        file_length=_file_length(content.get("fileLength")),
    )


def _decode_message(message: dict[str, Any]) -> MessagePayload:
    message_id = _text(message.get("id")) or _text(message.get("messageid"))
    if not message_id:
        raise UnrecognizedPayloadError("missing message id")

    content = message.get("content")
    media = message.get("media")

    return MessagePayload(
        id=message_id,
        sender=_text(message.get("sender")),
        sender_pn=_text(message.get("sender_pn")),
        chatid=_text(message.get("chatid")),
        sender_name=_text(message.get("senderName")),
        from_me=_flag(message.get("fromMe")),
        was_sent_by_api=_flag(message.get("wasSentByApi")),
        device_sent=_flag(message.get("deviceSent")),
        is_group=_flag(message.get("isGroup")),
        message_type=_text(message.get("messageType")),
        type=_text(message.get("type")),
        media_type=_text(message.get("mediaType")),
        text=_text(message.get("text")),
        content_text=_text(content),
        content_media=_decode_media_content(content) if isinstance(content, dict) else None,
        media_url=_text(media.get("url")) if isinstance(media, dict) else "",
        url=_text(message.get("url")),
        timestamp=_timestamp(message.get("messageTimestamp")),
    )


def _decode_chat(chat: Any) -> ChatPayload:
    if not isinstance(chat, dict):
        return ChatPayload()
    return ChatPayload(
        wa_chatid=_text(chat.get("wa_chatid")),
        phone=_text(chat.get("phone")),
        name=_text(chat.get("name")),
        contact_name=_text(chat.get("wa_contactName")),
        image_preview=_text(chat.get("imagePreview")),
    )


def decode_event(body: Any) -> InboundEvent:
    """Unwrap a webhook body and decode it into an InboundEvent.

    Args:
        body: Decoded JSON request body.

    Returns:
        InboundEvent for a ``messages`` event.

    Raises:
        UnrecognizedPayloadError: If the envelope has no message object, an
            event type other than ``messages`` is declared, or the message
            has no id.
    """
    shape, envelope = unwrap_envelope(body)

    # Some relays strip EventType; a missing type is treated as "messages"
    event_type = _text(envelope.get("EventType")) or _text(envelope.get("eventType"))
    if event_type and event_type != MESSAGES_EVENT:
        raise UnrecognizedPayloadError(f"unsupported event type: {event_type}")

    message = envelope.get("message")
    if not isinstance(message, dict) or not message:
        raise UnrecognizedPayloadError("message not found in payload")

    return InboundEvent(
        shape=shape,
        event_type=event_type or MESSAGES_EVENT,
        instance_name=_text(envelope.get("instanceName")),
        owner=_text(envelope.get("owner")),
        message=_decode_message(message),
        chat=_decode_chat(envelope.get("chat")),
    )
