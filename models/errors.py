"""
Error taxonomy shared by the API, the finalize gateway and the dispatcher.

Every error carries:
- code: stable machine-readable name returned to clients and written to
  failure notifications / the dead-letter list
- status_code: HTTP status used when the error surfaces synchronously
- retryable: whether repeating the same call can succeed

Errors raised before a job is accepted reach the caller as HTTP responses
(see api/errors.py). Errors raised after acceptance are only ever reported
through the notification sink.

Constructors take a single message argument so instances survive pickling
across the transform process pool.
"""


class IngestError(Exception):
    code = "IngestError"
    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.code


# ── Validation (synchronous 4xx, never retried) ─────────────────

class ValidationError(IngestError):
    code = "ValidationFailed"
    status_code = 422


class InvalidInput(ValidationError):
    code = "InvalidInput"
    status_code = 400


class PayloadTooLarge(ValidationError):
    code = "PayloadTooLarge"
    status_code = 413


class UnsupportedMediaType(ValidationError):
    code = "UnsupportedMediaType"
    status_code = 415


class MissingTicket(ValidationError):
    code = "MissingTicket"
    status_code = 400


class TicketInvalidFormat(ValidationError):
    code = "TicketInvalidFormat"
    status_code = 400


# ── Authorization ───────────────────────────────────────────────

class AuthorizationError(IngestError):
    code = "Forbidden"
    status_code = 403


class Unauthenticated(AuthorizationError):
    code = "Unauthenticated"
    status_code = 401


# ── Infrastructure (safe to retry, finalize is idempotent) ──────

class TransientInfraError(IngestError):
    code = "TransientInfraError"
    status_code = 503
    retryable = True


class UpstreamUnavailable(TransientInfraError):
    code = "UpstreamUnavailable"


class ProcessingTimeout(TransientInfraError):
    code = "ProcessingTimeout"


# ── Pipeline (after acceptance, reported asynchronously) ────────

class TransformError(IngestError):
    code = "TransformError"
    status_code = 422


class PersistenceError(IngestError):
    code = "PersistenceError"
