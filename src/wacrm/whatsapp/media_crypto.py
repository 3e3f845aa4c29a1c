"""WhatsApp media decryption and content-type sniffing.

Attachments served from the WhatsApp CDN are encrypted with a per-file
``mediaKey``:

- HKDF-SHA256 (zero salt, kind-specific info) expands the key to 112 bytes:
  iv (16) | cipher key (32) | mac key (32) | unused
- the file is AES-256-CBC ciphertext followed by a 10-byte MAC
- MAC = HMAC-SHA256(mac_key, iv + ciphertext)[:10]
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

MAC_LENGTH = 10
EXPANDED_KEY_LENGTH = 112

MEDIA_KEY_INFO: dict[str, bytes] = {
    "image": b"WhatsApp Image Keys",
    "sticker": b"WhatsApp Image Keys",
    "video": b"WhatsApp Video Keys",
    "audio": b"WhatsApp Audio Keys",
    "document": b"WhatsApp Document Keys",
}

FALLBACK_CONTENT_TYPE = "application/octet-stream"

EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "application/pdf": "pdf",
    FALLBACK_CONTENT_TYPE: "bin",
}


class MediaDecryptionError(Exception):
    """Raised when an attachment cannot be decrypted with its media key."""

    pass


def _media_info(kind: str) -> bytes:
    return MEDIA_KEY_INFO.get(kind, MEDIA_KEY_INFO["document"])


def expand_media_key(media_key: bytes, kind: str) -> tuple[bytes, bytes, bytes]:
    """Derive (iv, cipher_key, mac_key) from a raw media key."""
    expanded = HKDF(
        algorithm=hashes.SHA256(),
        length=EXPANDED_KEY_LENGTH,
        salt=None,
        info=_media_info(kind),
    ).derive(media_key)
    return expanded[:16], expanded[16:48], expanded[48:80]


def decrypt_media(encrypted: bytes, media_key_b64: str, kind: str) -> bytes:
    """Decrypt a WhatsApp CDN attachment.

    Args:
        encrypted: Downloaded bytes (ciphertext + 10-byte MAC).
        media_key_b64: ``content.mediaKey`` from the webhook payload.
        kind: Media kind (image, video, audio, sticker, document).

    Returns:
        Plaintext file bytes.

    Raises:
        MediaDecryptionError: On a bad key, MAC mismatch, or bad padding.
    """
    try:
        media_key = base64.b64decode(media_key_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MediaDecryptionError("media key is not valid base64") from exc

    if len(encrypted) <= MAC_LENGTH:
        raise MediaDecryptionError("encrypted media too short")

    iv, cipher_key, mac_key = expand_media_key(media_key, kind)
    ciphertext, mac = encrypted[:-MAC_LENGTH], encrypted[-MAC_LENGTH:]

    expected_mac = hmac.new(mac_key, iv + ciphertext, hashlib.sha256).digest()[:MAC_LENGTH]
    if not hmac.compare_digest(mac, expected_mac):
        raise MediaDecryptionError("media MAC mismatch")

    decryptor = Cipher(algorithms.AES(cipher_key), modes.CBC(iv)).decryptor()
    try:
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise MediaDecryptionError("invalid media padding") from exc


def detect_content_type(data: bytes, response_content_type: str | None = None) -> str:
    """Content type from magic bytes, then the HTTP response header."""
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:3] == b"GIF":
        return "image/gif"
    if data[:4] == b"OggS":
        return "audio/ogg"
    if data[:4] == b"%PDF":
        return "application/pdf"
    if len(data) >= 8 and data[4:8] == b"ftyp":
        return "video/mp4"

    if response_content_type:
        base_type = response_content_type.split(";", 1)[0].strip().lower()
        if base_type and base_type != FALLBACK_CONTENT_TYPE:
            return base_type

    return FALLBACK_CONTENT_TYPE


def extension_for(content_type: str) -> str:
    base_type = content_type.split(";", 1)[0].strip().lower()
    if base_type in EXTENSIONS:
        return EXTENSIONS[base_type]
    subtype = base_type.rsplit("/", 1)[-1]
    return subtype if subtype.isalnum() else "bin"
