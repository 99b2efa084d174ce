"""Error kinds shared by the web surface, the bot and the storage engine.

Each kind carries the HTTP status it maps to, so the transport boundary never
has to guess a status from a message.
"""


class ImgbedError(Exception):
    status = 500

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ConfigurationError(ImgbedError):
    """Missing credential or bucket binding. Fatal at boot."""


class SchemaError(ImgbedError):
    """Metadata schema could not be created or healed. Fatal at boot."""


class ValidationError(ImgbedError):
    status = 400


class PayloadTooLargeError(ValidationError):
    status = 413


class NotFoundError(ImgbedError):
    status = 404


class UpstreamError(ImgbedError):
    """Non-success answer from the object store or the relay API."""

    status = 502


class UpstreamTimeoutError(UpstreamError):
    status = 504


class RelayResponseError(UpstreamError):
    """Relay accepted the upload but the response lacks an attachment or message id."""


class PersistenceRowError(ImgbedError):
    """A single row failed during a bulk migration. Logged, never raised past the batch."""

    def __init__(self, table: str, row: dict, cause: Exception) -> None:
        super().__init__(f"failed to restore row into {table}: {cause}")
        self.table = table
        self.row = row
        self.cause = cause
