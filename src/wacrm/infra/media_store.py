"""HTTP media store - fetch provider attachments and persist them durably.

Flow per attachment:
1. download the short-lived provider URL (size-capped; an announced
   ``fileLength`` over the cap is refused before any request)
2. decrypt it when the payload announced a WhatsApp ``mediaKey``
3. pick the content type (payload mimetype, magic bytes, response header)
4. PUT it to the storage endpoint under
   ``<company_id>/whatsapp/<message id>.<ext>`` and return the stored URL

The storage endpoint is an external service (object storage or a signing
proxy in front of it). It answers the PUT with ``{"url": ...}``; when it
does not, the object URL itself is used.
"""

from __future__ import annotations

import re

import requests

from wacrm.config import Settings
from wacrm.domain.errors import MediaFetchError
from wacrm.observability.logging import get_logger
from wacrm.observability.redaction import id_prefix, safe_log_context
from wacrm.whatsapp.media import MediaResolution
from wacrm.whatsapp.media_crypto import (
    MediaDecryptionError,
    decrypt_media,
    detect_content_type,
    extension_for,
)

logger = get_logger(__name__)

# Headers the WhatsApp CDN accepts without re-encoding the body
DOWNLOAD_HEADERS = {
    "User-Agent": "WhatsApp/2.0",
    "Accept": "*/*",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-cache",
}

_CHUNK_SIZE = 64 * 1024
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_key_part(value: str) -> str:
    """Make a provider id safe to use inside an object key/URL."""
    return _UNSAFE_KEY_CHARS.sub("_", value) or "media"


class HttpMediaStore:
    """MediaStore over plain HTTP using requests.

    Args:
        base_url: Storage endpoint (objects are PUT below it).
        token: Bearer token for the storage endpoint ("" for none).
        timeout: Seconds per HTTP request.
        max_bytes: Maximum accepted download size.
        session: Optional requests session (tests inject one).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 30.0,
        max_bytes: int = 16 * 1024 * 1024,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._max_bytes = max_bytes
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpMediaStore":
        return cls(
            settings.media_store_url,
            token=settings.media_store_token,
            timeout=settings.media_fetch_timeout,
            max_bytes=settings.media_max_bytes,
        )

    def persist_media(
        self,
        company_id: str,
        message_id: str,
        source_url: str,
        media: MediaResolution,
    ) -> str:
        """Fetch, decrypt if needed, and upload one attachment.

        Raises:
            MediaFetchError: On any download or upload failure.
        """
        if media.file_length is not None and media.file_length > self._max_bytes:
            raise MediaFetchError("media exceeds size limit")

        data, response_type = self._download(source_url)

        if media.media_key:
            try:
                data = decrypt_media(data, media.media_key, media.message_type)
            except MediaDecryptionError as exc:
                # Some provider URLs already serve the decrypted file
                logger.warning(
                    "media decryption skipped",
                    extra={
                        "extra_fields": safe_log_context(
                            message_id_prefix=id_prefix(message_id),
                            reason=str(exc),
                        )
                    },
                )

        content_type = media.mime_type.split(";", 1)[0].strip() or detect_content_type(
            data, response_type
        )
        key = (
            f"{sanitize_key_part(company_id)}/whatsapp/"
            f"{sanitize_key_part(message_id)}.{extension_for(content_type)}"
        )
        stored_url = self._upload(key, data, content_type)

        logger.info(
            "media stored",
            extra={
                "extra_fields": safe_log_context(
                    message_id_prefix=id_prefix(message_id),
                    content_type=content_type,
                    size=len(data),
                )
            },
        )
        return stored_url

    def _download(self, source_url: str) -> tuple[bytes, str]:
        try:
            with self._session.get(
                source_url,
                headers=DOWNLOAD_HEADERS,
                timeout=self._timeout,
                stream=True,
            ) as response:
                response.raise_for_status()
                chunks: list[bytes] = []
                size = 0
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise MediaFetchError("media exceeds size limit")
                    chunks.append(chunk)
                return b"".join(chunks), response.headers.get("Content-Type", "")
        except requests.RequestException as exc:
            raise MediaFetchError(f"media download failed: {type(exc).__name__}") from exc

    def _upload(self, key: str, data: bytes, content_type: str) -> str:
        object_url = f"{self._base_url}/{key}"
        headers = {"Content-Type": content_type}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = self._session.put(
                object_url,
                data=data,
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise MediaFetchError(f"media upload failed: {type(exc).__name__}") from exc

        try:
            body = response.json()
        except ValueError:
            return object_url
        if isinstance(body, dict) and isinstance(body.get("url"), str) and body["url"]:
            return body["url"]
        return object_url
