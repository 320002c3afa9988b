"""
Failure taxonomy for the extraction pipeline and the insights analysis.

Every failure that crosses a component boundary is one of these types so callers
can decide between retrying, asking the user, or giving up.
"""

from __future__ import annotations


class ExtractionError(RuntimeError):
    kind = "extraction_error"
    retryable = False


class PreconditionError(ExtractionError):
    """A required secret or setting is missing; nothing was sent over the network."""

    kind = "precondition"


class TransportError(ExtractionError):
    kind = "transport"
    retryable = True


class ModelRejectionError(ExtractionError):
    kind = "model_rejection"

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"Model endpoint returned HTTP {status_code}")

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code == 429 or self.status_code >= 500

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in {401, 403}


class UnparseableResponseError(ExtractionError):
    kind = "unparseable"


class InvalidRecordError(ExtractionError):
    kind = "invalid_record"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class UnreadableDocumentError(ExtractionError):
    kind = "unreadable_document"


class PersistenceError(ExtractionError):
    kind = "persistence"
    retryable = True


class ExpenseNotFoundError(LookupError):
    pass


class AnalysisInProgressError(RuntimeError):
    pass
