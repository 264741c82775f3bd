"""Exception hierarchy for the extraction pipeline.

Lower layers raise these; only the worker turns them into a document status.
``retryable`` tells the queue whether a failed attempt may be re-run.
"""


class ExtractionPipelineError(Exception):
    """Base exception for all pipeline errors."""

    retryable = True


class ConfigurationError(ExtractionPipelineError):
    """Missing credentials or unknown provider. Never retried."""

    retryable = False


class DocumentNotFoundError(ExtractionPipelineError):
    """Document (or request) does not exist."""

    retryable = False


class UnauthorizedError(ExtractionPipelineError):
    """Document does not belong to the user named in the job."""

    retryable = False


class InvalidStateError(ExtractionPipelineError):
    """Operation is not allowed in the current document/request status."""

    retryable = False


class StorageError(ExtractionPipelineError):
    """Reading or writing a stored file failed."""


class DocumentUnreadableError(ExtractionPipelineError):
    """Document is corrupt, unsupported or has no extractable text."""


class ProviderError(ExtractionPipelineError):
    """LLM provider call failed (network, rate limit, empty response)."""


class ExtractionSchemaError(ExtractionPipelineError):
    """Provider answered, but the answer is not valid against the schema."""

    def __init__(
        self, message: str, errors: list[str] | None = None, raw_response: str | None = None
    ):
        super().__init__(message)
        self.errors = errors or []
        self.raw_response = raw_response


class JobTimeoutError(ExtractionPipelineError):
    """Attempt exceeded the per-job timeout."""


def is_retryable(exc: BaseException) -> bool:
    """Unknown exceptions are treated as transient."""
    if isinstance(exc, ExtractionPipelineError):
        return exc.retryable
    return True
