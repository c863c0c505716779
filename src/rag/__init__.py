"""
RAG (Retrieval-Augmented Generation) package.

This package contains the ingestion and answering components of the brain.
"""

from src.rag.models import (
    AnswerResult,
    AskRequest,
    Chunk,
    ChunkingConfig,
    FileCategory,
    IngestOutcome,
    IngestRequest,
    IngestStatus,
    RerankScore,
    RetrievedCandidate,
    SourceDocument,
)
from src.rag.llm_factory import LLMFactory
from src.rag.embedding_factory import EmbeddingFactory
from src.rag.text_splitter_factory import ChunkingStrategySelector, TextSplitterFactory
from src.rag.error_handler import (
    AgentParseError,
    BrainError,
    ErrorHandler,
    IngestionFailed,
    PayloadValidationError,
    UpstreamUnavailable,
)
from src.rag.resilience import ResilientCaller
from src.rag.vector_store_manager import VectorStoreManager
from src.rag.ingestion_coordinator import IngestionCoordinator
from src.rag.document_grader import DocumentGrader
from src.rag.retrieval_pipeline import RetrievalPipeline
from src.rag.answer_generator import NOT_FOUND_ANSWER, AnswerGenerator
from src.rag.agent_answer_extractor import AgentAnswerExtractor
from src.rag.service_context import ServiceContext

__all__ = [
    # Models
    "AnswerResult",
    "AskRequest",
    "Chunk",
    "ChunkingConfig",
    "FileCategory",
    "IngestOutcome",
    "IngestRequest",
    "IngestStatus",
    "RerankScore",
    "RetrievedCandidate",
    "SourceDocument",
    # Factories
    "LLMFactory",
    "EmbeddingFactory",
    "TextSplitterFactory",
    "ChunkingStrategySelector",
    # Managers
    "VectorStoreManager",
    "IngestionCoordinator",
    "ServiceContext",
    # Answering
    "DocumentGrader",
    "RetrievalPipeline",
    "AnswerGenerator",
    "AgentAnswerExtractor",
    "NOT_FOUND_ANSWER",
    # Errors
    "BrainError",
    "PayloadValidationError",
    "UpstreamUnavailable",
    "IngestionFailed",
    "AgentParseError",
    "ErrorHandler",
    # Utilities
    "ResilientCaller",
]
