"""
Unit tests for ServiceContext.
"""

from unittest.mock import Mock, patch

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from src.config import AgentSettings, AppSettings, EngineSettings
from src.rag.agent_answer_extractor import AgentAnswerExtractor
from src.rag.ingestion_coordinator import VERSIONED_SWAP
from src.rag.service_context import ServiceContext


@pytest.fixture
def patched_factories():
    with patch("src.rag.service_context.LLMFactory") as llm_factory, \
         patch("src.rag.service_context.EmbeddingFactory") as embedding_factory:
        llm_factory.return_value.create_llm.return_value = FakeListChatModel(responses=["x"])
        yield llm_factory, embedding_factory


def test_init_wires_components(patched_factories):
    llm_factory, embedding_factory = patched_factories
    settings = AppSettings(engine=EngineSettings(replace_strategy=VERSIONED_SWAP))

    context = ServiceContext.init(settings)
    try:
        assert context.ingestion_coordinator.replace_strategy == VERSIONED_SWAP
        assert context.ingestion_coordinator.vector_index is context.vector_store_manager
        assert context.retrieval_pipeline.vector_index is context.vector_store_manager
        assert context.retrieval_pipeline.candidate_k == settings.retrieval.candidate_k
        assert context.agent_extractor is None
        assert context.vector_store_manager.embedding_model is embedding_factory.return_value.create_embedding_model.return_value
        # Provider SDK retries are disabled; the resilient caller retries instead.
        assert llm_factory.call_args.kwargs["max_retries"] == 0
    finally:
        context.close()


def test_init_with_agent(patched_factories):
    settings = AppSettings(agent=AgentSettings(enabled=True, max_iterations=2))
    context = ServiceContext.init(settings)
    try:
        assert isinstance(context.agent_extractor, AgentAnswerExtractor)
        assert context.agent_extractor.max_iterations == 2
        assert context.agent_extractor.max_attempts == settings.resilience.max_attempts
    finally:
        context.close()


def test_init_failure_releases_caller(patched_factories):
    llm_factory, _ = patched_factories
    llm_factory.return_value.create_llm.side_effect = RuntimeError("bad key")
    with patch("src.rag.service_context.ResilientCaller") as mock_caller:
        with pytest.raises(RuntimeError):
            ServiceContext.init(AppSettings())
    mock_caller.return_value.close.assert_called_once()


def test_close_is_idempotent():
    context = ServiceContext(
        caller=Mock(),
        vector_store_manager=Mock(),
        ingestion_coordinator=Mock(),
        retrieval_pipeline=Mock(),
        answer_generator=Mock(),
    )
    with context:
        pass
    context.close()

    context.caller.close.assert_called_once()
    context.vector_store_manager.close.assert_called_once()
    assert context.closed
