"""Media classification and media URL location.

No single field marks an attachment across every UAZAPI payload variant,
so a message is media when any of these holds:

1. ``type == "media"`` and ``mediaType`` is set;
2. ``messageType`` contains "message" and is not a plain text type;
3. ``media.url`` is present;
4. ``content`` is an object carrying ``URL``/``url``.

Provider media URLs are short-lived. They are only handed to the media
store; the stored message content is a placeholder naming the media kind.
"""

from dataclasses import dataclass
from enum import Enum

from .models import MessagePayload

TEXT_MESSAGE_TYPES = frozenset({"conversation", "extendedtextmessage"})

# Substrings that map a provider type onto a media kind, checked in order
_KIND_HINTS: tuple[tuple[str, str], ...] = (
    ("sticker", "sticker"),
    ("image", "image"),
    ("video", "video"),
    ("audio", "audio"),
    ("ptt", "audio"),
    ("voice", "audio"),
    ("document", "document"),
)

DEFAULT_MEDIA_KIND = "document"
TEXT_MESSAGE_TYPE = "text"


class MediaSource(str, Enum):
    """Where the media URL was found."""

    CONTENT_OBJECT = "content_object"
    MEDIA_OBJECT = "media_object"
    TOP_LEVEL_URL = "top_level_url"


@dataclass(frozen=True)
class MediaResolution:
    """Outcome of classifying one message.

    Attributes:
        is_media: True if the message carries an attachment.
        content: Text content (message text, string content, or "").
        message_type: "text" or the media kind.
        source_url: Provider URL to fetch, None for text or URL-less media.
        source: Which payload location the URL came from.
        mime_type: Mimetype announced by the provider, if any.
        media_key: Base64 WhatsApp media key when the file is encrypted.
        file_length: Attachment size announced by the provider, if any.
    """

    is_media: bool
    content: str
    message_type: str = TEXT_MESSAGE_TYPE
    source_url: str | None = None
    source: MediaSource | None = None
    mime_type: str = ""
    media_key: str = ""
    file_length: int | None = None

    @property
    def placeholder(self) -> str:
        return media_placeholder(self.message_type)


def is_media_message(message: MessagePayload) -> bool:
    message_type = message.message_type.lower()

    if message.type.lower() == "media" and message.media_type:
        return True
    if "message" in message_type and message_type not in TEXT_MESSAGE_TYPES:
        return True
    if message.media_url:
        return True
    if message.content_media is not None and message.content_media.url:
        return True
    return False


def locate_media_url(message: MessagePayload) -> tuple[str, MediaSource] | None:
    """First non-empty of content object URL, media.url, top-level url."""
    if message.content_media is not None and message.content_media.url:
        return message.content_media.url, MediaSource.CONTENT_OBJECT
    if message.media_url:
        return message.media_url, MediaSource.MEDIA_OBJECT
    if message.url:
        return message.url, MediaSource.TOP_LEVEL_URL
    return None


def media_kind(message: MessagePayload) -> str:
    """Media kind from ``mediaType``, falling back to ``messageType``."""
    for raw in (message.media_type.lower(), message.message_type.lower()):
        if not raw:
            continue
        for hint, kind in _KIND_HINTS:
            if hint in raw:
                return kind
    return DEFAULT_MEDIA_KIND


def media_placeholder(kind: str) -> str:
    return f"[{kind}]"


def text_content(message: MessagePayload) -> str:
    return message.text or message.content_text or ""


def resolve_media(message: MessagePayload) -> MediaResolution:
    """Classify a message and locate its media URL.

    Args:
        message: Decoded message payload.

    Returns:
        MediaResolution. ``content`` always holds the text fields; the
        orchestrator swaps in the placeholder once the media is stored.
    """
    content = text_content(message)

    if not is_media_message(message):
        return MediaResolution(is_media=False, content=content)

    located = locate_media_url(message)
    media = message.content_media
    return MediaResolution(
        is_media=True,
        content=content,
        message_type=media_kind(message),
        source_url=located[0] if located else None,
        source=located[1] if located else None,
        mime_type=media.mimetype if media else "",
        media_key=media.media_key if media else "",
        file_length=media.file_length if media else None,
    )
