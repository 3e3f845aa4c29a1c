"""Ingestion error taxonomy.

Every failure the pipeline can classify carries a stable ``code`` that ends
up in logs and in the webhook response. Filter rejections are not errors
and live in ``wacrm.whatsapp.filters``.
"""


class IngestionError(Exception):
    """Base class for classified, non-retryable ingestion failures."""

    code = "ingestion_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnrecognizedPayloadError(IngestionError):
    """Envelope has no message object or is not a ``messages`` event."""

    code = "unrecognized_payload"


class InvalidPhoneNumberError(IngestionError):
    """No usable phone number (at least 10 digits) in the event."""

    code = "invalid_phone_number"


class InstanceNotFoundError(IngestionError):
    """Provider instance is unknown or not connected."""

    code = "instance_not_found"


class PersistenceError(IngestionError):
    """Persistence gateway failed to read or write."""

    code = "persistence_failure"


class MediaFetchError(IngestionError):
    """Media store could not fetch or persist the attachment."""

    code = "media_fetch_failure"
