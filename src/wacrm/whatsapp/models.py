"""UAZAPI webhook models, decoded once at the boundary.

The provider payload is loosely typed and varies by delivery mode. These
dataclasses are the only shape the rest of the pipeline sees; all field
probing happens in ``envelope.decode_event``.

ATENÇÃO PII:
- phone identifiers, names and text are PII
- they live in memory for the duration of one request
- never log them; use ``observability.redaction`` helpers
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

Direction = Literal["inbound", "outbound"]


class EnvelopeShape(str, Enum):
    """Known delivery envelopes."""

    BATCHED = "batched"  # [ { "body": {...} } ]
    NESTED_BODY = "nested_body"  # { "body": {...} }
    DIRECT = "direct"  # { "EventType": ..., "message": {...} }


@dataclass(frozen=True)
class MediaContent:
    """Object form of ``message.content`` (attachment metadata)."""

    url: str = ""
    mimetype: str = ""
    media_key: str = ""
    file_length: int | None = None


@dataclass(frozen=True)
class MessagePayload:
    """The ``message`` object of a UAZAPI event."""

    id: str
    sender: str = ""
    sender_pn: str = ""
    chatid: str = ""
    sender_name: str = ""
    from_me: bool = False
    was_sent_by_api: bool = False
    device_sent: bool = False
    is_group: bool = False
    message_type: str = ""
    type: str = ""
    media_type: str = ""
    text: str = ""
    content_text: str = ""  # message.content when it is a string
    content_media: MediaContent | None = None  # message.content when it is an object
    media_url: str = ""  # message.media.url
    url: str = ""  # message.url
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ChatPayload:
    """The ``chat`` object of a UAZAPI event (may be absent)."""

    wa_chatid: str = ""
    phone: str = ""
    name: str = ""
    contact_name: str = ""
    image_preview: str = ""


@dataclass(frozen=True)
class InboundEvent:
    """One webhook delivery after unwrapping. Never persisted as-is."""

    shape: EnvelopeShape
    event_type: str
    instance_name: str
    owner: str
    message: MessagePayload
    chat: ChatPayload = field(default_factory=ChatPayload)
