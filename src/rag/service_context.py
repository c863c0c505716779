"""
Service Context Module

One handle holding every collaborator of the ingestion and answering
pipelines. Built once per process with ``ServiceContext.init`` and released
with ``close``.
"""

import logging
from typing import Any, Optional

from src.config import AppSettings
from src.config import settings as app_settings
from src.rag.agent_answer_extractor import AgentAnswerExtractor
from src.rag.answer_generator import AnswerGenerator
from src.rag.document_grader import DocumentGrader
from src.rag.embedding_factory import EmbeddingFactory
from src.rag.error_handler import ErrorHandler
from src.rag.ingestion_coordinator import IngestionCoordinator
from src.rag.llm_factory import LLMFactory
from src.rag.resilience import ResilientCaller
from src.rag.retrieval_pipeline import RetrievalPipeline
from src.rag.text_splitter_factory import ChunkingStrategySelector, TextSplitterFactory
from src.rag.vector_store_manager import VectorStoreManager


class ServiceContext:
    """Explicit handle over the collaborators shared by the write and read paths."""

    def __init__(
        self,
        caller: ResilientCaller,
        vector_store_manager: VectorStoreManager,
        ingestion_coordinator: IngestionCoordinator,
        retrieval_pipeline: RetrievalPipeline,
        answer_generator: AnswerGenerator,
        agent_extractor: Optional[AgentAnswerExtractor] = None,
        error_handler: Optional[ErrorHandler] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.caller = caller
        self.vector_store_manager = vector_store_manager
        self.ingestion_coordinator = ingestion_coordinator
        self.retrieval_pipeline = retrieval_pipeline
        self.answer_generator = answer_generator
        self.agent_extractor = agent_extractor
        self.logger = logger or logging.getLogger(__name__)
        self.error_handler = error_handler or ErrorHandler(logger=self.logger)
        self.closed = False

    @classmethod
    def init(cls, settings: Optional[AppSettings] = None, logger: Optional[logging.Logger] = None) -> "ServiceContext":
        """
        Build every collaborator from configuration.

        Args:
            settings: Application settings (defaults to the module-level settings)
            logger: Optional logger shared by all components

        Returns:
            A ready ServiceContext

        Raises:
            RuntimeError: If a model or the vector store cannot be initialized
        """
        cfg = settings or app_settings
        logger = logger or logging.getLogger(__name__)

        caller = ResilientCaller(
            timeout_seconds=cfg.resilience.call_timeout_seconds,
            max_attempts=cfg.resilience.max_attempts,
            logger=logger,
        )

        try:
            llm_factory = LLMFactory(
                llm_provider=cfg.llm.llm_provider,
                llm_model_name=cfg.llm.get_model_name_for_provider(cfg.llm.llm_provider),
                temperature=cfg.llm.temperature,
                google_api_key=cfg.api.google_api_key,
                openai_api_key=cfg.api.openai_api_key,
                timeout_seconds=cfg.resilience.call_timeout_seconds,
                # Retries are owned by the resilient caller.
                max_retries=0,
                logger=logger,
            )
            llm = llm_factory.create_llm(use_json_format=False)
            json_llm = llm_factory.create_llm(use_json_format=True)

            embedding_model = EmbeddingFactory(
                embedding_provider=cfg.embedding.embedding_provider,
                embedding_model_name=cfg.embedding.get_model_name_for_provider(cfg.embedding.embedding_provider),
                google_api_key=cfg.api.google_api_key,
                openai_api_key=cfg.api.openai_api_key,
                timeout_seconds=cfg.resilience.call_timeout_seconds,
                max_retries=0,
                logger=logger,
            ).create_embedding_model()
        except Exception:
            caller.close()
            raise

        vector_store_manager = VectorStoreManager(
            embedding_model=embedding_model,
            collection_name=cfg.vector_store.collection_name,
            caller=caller,
            host=cfg.vector_store.host,
            port=cfg.vector_store.port,
            persist_directory=cfg.vector_store.persist_directory,
            logger=logger,
        )

        selector = ChunkingStrategySelector(
            markdown_chunk_size=cfg.engine.markdown_chunk_size,
            markdown_chunk_overlap=cfg.engine.markdown_chunk_overlap,
            code_chunk_size=cfg.engine.code_chunk_size,
            code_chunk_overlap=cfg.engine.code_chunk_overlap,
            generic_chunk_size=cfg.engine.generic_chunk_size,
            generic_chunk_overlap=cfg.engine.generic_chunk_overlap,
        )
        ingestion_coordinator = IngestionCoordinator(
            vector_index=vector_store_manager,
            selector=selector,
            splitter_factory=TextSplitterFactory(logger=logger),
            replace_strategy=cfg.engine.replace_strategy,
            logger=logger,
        )

        retrieval_pipeline = RetrievalPipeline(
            vector_index=vector_store_manager,
            reranker=DocumentGrader(json_llm=json_llm, caller=caller, logger=logger),
            candidate_k=cfg.retrieval.candidate_k,
            top_n=cfg.retrieval.top_n,
            min_relevance_score=cfg.retrieval.min_relevance_score,
            logger=logger,
        )
        answer_generator = AnswerGenerator(llm=llm, caller=caller, logger=logger)

        agent_extractor = None
        if cfg.agent.enabled:
            agent_extractor = AgentAnswerExtractor(
                llm=llm,
                retrieval_pipeline=retrieval_pipeline,
                max_iterations=cfg.agent.max_iterations,
                min_recovered_length=cfg.agent.min_recovered_length,
                max_attempts=cfg.resilience.max_attempts,
                logger=logger,
            )

        logger.info(
            f"Service context ready (llm={cfg.llm.llm_provider}, embeddings={cfg.embedding.embedding_provider}, "
            f"collection={cfg.vector_store.collection_name}, agent={'on' if agent_extractor else 'off'})"
        )
        return cls(
            caller=caller,
            vector_store_manager=vector_store_manager,
            ingestion_coordinator=ingestion_coordinator,
            retrieval_pipeline=retrieval_pipeline,
            answer_generator=answer_generator,
            agent_extractor=agent_extractor,
            logger=logger,
        )

    def close(self) -> None:
        """Release the store client and stop the caller. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        self.vector_store_manager.close()
        self.caller.close()
        self.logger.info("Service context closed.")

    def __enter__(self) -> "ServiceContext":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
