import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from src.rag import (
    AnswerResult,
    AskRequest,
    IngestionFailed,
    IngestOutcome,
    IngestRequest,
    IngestStatus,
    PayloadValidationError,
    ServiceContext,
    UpstreamUnavailable,
)


class CoreRAGEngine:
    """
    Request-level facade over the brain's ingestion and answering pipelines.

    Delegates to the collaborators held by a ServiceContext:
    - IngestionCoordinator: staleness check and chunk replacement
    - RetrievalPipeline: similarity search and reranking
    - AnswerGenerator: grounded single-call answers
    - AgentAnswerExtractor: tool-using agent mode (optional)

    Payloads are validated here. Read-path failures never escape ``ask``;
    they become an error AnswerResult.
    """

    def __init__(
        self,
        context: ServiceContext,
        job_queue: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Args:
            context: Initialized service context
            job_queue: Optional IngestJobQueue used by ``enqueue``
            logger: Optional logger instance
        """
        self.context = context
        self.job_queue = job_queue
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.error_handler = context.error_handler

    # ==================== Validation ====================

    @staticmethod
    def parse_ingest_request(payload: Union[IngestRequest, Dict[str, Any]]) -> IngestRequest:
        """
        Validate an ingest payload.

        Raises:
            PayloadValidationError: If a field is missing, blank or malformed
        """
        if isinstance(payload, IngestRequest):
            return payload
        try:
            return IngestRequest.model_validate(payload)
        except ValidationError as e:
            raise PayloadValidationError.from_pydantic(e) from e

    @staticmethod
    def parse_ask_request(payload: Union[AskRequest, Dict[str, Any]]) -> AskRequest:
        """
        Validate an ask payload.

        Raises:
            PayloadValidationError: If the query is missing or blank
        """
        if isinstance(payload, AskRequest):
            return payload
        try:
            return AskRequest.model_validate(payload)
        except ValidationError as e:
            raise PayloadValidationError.from_pydantic(e) from e

    # ==================== Write Path ====================

    def ingest(self, payload: Union[IngestRequest, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Ingest one file synchronously.

        Args:
            payload: Ingest request (``filePath``, ``content``, ``lastModified``)

        Returns:
            Response dictionary with ``status`` and ``message``

        Raises:
            PayloadValidationError: If the payload is invalid
        """
        request = self.parse_ingest_request(payload)
        doc = request.to_source_document()
        try:
            outcome = self.context.ingestion_coordinator.ingest(doc)
        except IngestionFailed as e:
            return self.error_handler.ingest_error(e, doc.file_path)

        return {"status": "ok", "message": self._describe_outcome(outcome)}

    def enqueue(self, payload: Union[IngestRequest, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Queue one file for ingestion by a worker.

        Returns:
            Response dictionary with ``status``, ``message``, ``jobId`` and ``deduplicated``,
            or ``status`` "error" and ``message`` when the queue is unavailable

        Raises:
            PayloadValidationError: If the payload is invalid
            RuntimeError: If no job queue is configured
        """
        request = self.parse_ingest_request(payload)
        if self.job_queue is None:
            raise RuntimeError("No ingest job queue configured.")

        try:
            receipt = self.job_queue.enqueue(request)
        except UpstreamUnavailable as e:
            return self.error_handler.queue_error(e, request.file_path)

        message = (
            f"Ingestion of {request.file_path} already pending."
            if receipt.deduplicated
            else f"Ingestion of {request.file_path} queued."
        )
        return {"status": "ok", "message": message, "jobId": receipt.job_id, "deduplicated": receipt.deduplicated}

    @staticmethod
    def _describe_outcome(outcome: IngestOutcome) -> str:
        if outcome.status == IngestStatus.SKIPPED:
            return f"File {outcome.file_path} is already up to date."
        return f"File {outcome.file_path} re-indexed. {outcome.chunk_count} chunks created."

    # ==================== Read Path ====================

    def ask(self, payload: Union[AskRequest, Dict[str, Any]]) -> AnswerResult:
        """
        Answer a question from the indexed files.

        Args:
            payload: Ask request (``query``)

        Returns:
            AnswerResult; status "error" when a collaborator failed

        Raises:
            PayloadValidationError: If the payload is invalid
        """
        request = self.parse_ask_request(payload)
        query = request.query
        self.logger.info(f"Question received: {query}")

        try:
            if self.context.agent_extractor is not None:
                return self.context.agent_extractor.run(query)

            passages = self.context.retrieval_pipeline.retrieve(query)
            answer = self.context.answer_generator.answer(query, passages)
            return AnswerResult(status="ok", answer=answer)
        except Exception as e:
            return self.error_handler.answer_error(e, query)
