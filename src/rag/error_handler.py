"""
Exception taxonomy and boundary error handling for the ingest and ask paths.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from src.rag.models import AnswerResult, IngestOutcome


GENERIC_ERROR_ANSWER = "Failed to process the question."
GENERIC_INGEST_ERROR_MESSAGE = "Failed to re-index the file."
GENERIC_QUEUE_ERROR_MESSAGE = "Failed to queue the file for ingestion."


class BrainError(Exception):
    """Base class for all errors raised by the brain pipelines."""


class PayloadValidationError(BrainError):
    """A request payload failed validation before reaching the core."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, error: ValidationError) -> "PayloadValidationError":
        details = []
        for item in error.errors():
            location = ".".join(str(part) for part in item.get("loc", ()))
            details.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
        return cls("; ".join(details) or "Invalid payload", errors=error.errors())


class UpstreamUnavailable(BrainError):
    """A collaborator call (vector store, embeddings, LLM, reranker) failed or timed out."""

    def __init__(self, service: str, operation: str, cause: Optional[BaseException] = None):
        message = f"{service} unavailable during '{operation}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.service = service
        self.operation = operation
        self.cause = cause


class IngestionFailed(UpstreamUnavailable):
    """Ingestion of one file failed; carries the Failed outcome for the caller."""

    def __init__(self, outcome: IngestOutcome, cause: Optional[BaseException] = None):
        BrainError.__init__(self, f"Ingestion failed for '{outcome.file_path}': {outcome.reason}")
        self.service = getattr(cause, "service", "ingestion")
        self.operation = getattr(cause, "operation", "ingest")
        self.cause = cause
        self.outcome = outcome


class AgentParseError(BrainError):
    """The agent loop produced output that failed structural parsing."""

    def __init__(self, raw_error: str):
        super().__init__(raw_error)
        self.raw_error = raw_error


class ErrorHandler:
    """Converts exceptions into caller-facing responses at the pipeline boundary."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the error handler.

        Args:
            logger: Logger instance for logging
        """
        self.logger = logger or logging.getLogger(__name__)

    def answer_error(self, error: BaseException, query: str) -> AnswerResult:
        """
        Convert a read-path failure into an error AnswerResult.

        Args:
            error: The exception caught at the ask boundary
            query: The question being answered

        Returns:
            AnswerResult with status "error"
        """
        if isinstance(error, UpstreamUnavailable):
            self.logger.error(f"Upstream failure while answering '{query}': {error}", exc_info=error)
        else:
            self.logger.critical(f"Unexpected error while answering '{query}': {error}", exc_info=error)
        return AnswerResult(status="error", answer=GENERIC_ERROR_ANSWER)

    def ingest_error(self, error: BaseException, file_path: str) -> Dict[str, Any]:
        """
        Convert a synchronous ingest failure into an error response.

        Args:
            error: The exception caught at the ingest boundary
            file_path: The file being ingested

        Returns:
            Response dictionary with status "error"
        """
        self.logger.error(f"Error during ingestion of '{file_path}': {error}", exc_info=error)
        return {"status": "error", "message": GENERIC_INGEST_ERROR_MESSAGE}

    def queue_error(self, error: BaseException, file_path: str) -> Dict[str, Any]:
        """Response body for an ingest request the queue could not accept."""
        self.logger.error(f"Error while queueing '{file_path}': {error}", exc_info=error)
        return {"status": "error", "message": GENERIC_QUEUE_ERROR_MESSAGE}

    def validation_error(self, error: PayloadValidationError) -> Dict[str, Any]:
        """Response body for a rejected payload."""
        self.logger.warning(f"Rejected payload: {error}")
        return {"status": "error", "message": str(error)}
