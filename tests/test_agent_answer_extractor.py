"""
Unit tests for AgentAnswerExtractor.
"""

from unittest.mock import Mock

import pytest
from langchain_core.exceptions import OutputParserException
from langchain_core.language_models.fake import FakeListLLM

from src.rag.agent_answer_extractor import (
    AGENT_FAILURE_ANSWER,
    NO_PASSAGES_OBSERVATION,
    AgentAnswerExtractor,
)
from src.rag.models import RetrievedCandidate


class FlakyListLLM(FakeListLLM):
    """Fails the first `failures` calls with a connection error, then replays responses."""

    failures: int = 1

    def _call(self, prompt, stop=None, run_manager=None, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("transient 503")
        return super()._call(prompt, stop=stop, run_manager=run_manager, **kwargs)


@pytest.fixture
def retrieval_pipeline():
    pipeline = Mock()
    pipeline.retrieve.return_value = [
        RetrievedCandidate(text="bar { swaybar_command waybar }", source_path="/cfg/sway/config", relevance_score=0.9)
    ]
    return pipeline


@pytest.fixture
def executor():
    return Mock()


@pytest.fixture
def extractor(retrieval_pipeline, executor):
    return AgentAnswerExtractor(llm=Mock(), retrieval_pipeline=retrieval_pipeline, executor=executor)


class TestRun:
    """Tests for run with a stubbed executor."""

    def test_completed_answer(self, extractor, executor):
        executor.invoke.return_value = {"output": " Sway uses waybar. "}
        result = extractor.run("Which bar?")
        assert result.status == "ok"
        assert result.answer == "Sway uses waybar."
        executor.invoke.assert_called_once_with({"input": "Which bar?"})

    def test_parse_error_with_final_answer_is_recovered(self, extractor, executor):
        executor.invoke.side_effect = OutputParserException(
            "Parsing LLM output produced both a final answer and a parse-able action:: "
            "Final Answer: Use waybar's config.\nAction: search_personal_files\nAction Input: bar"
        )
        result = extractor.run("Which bar?")
        assert result.status == "ok"
        assert result.answer == "Use waybar's config."

    def test_wrapped_parse_error_with_prose_is_recovered(self, extractor, executor):
        executor.invoke.side_effect = ValueError(
            "An output parsing error occurred. This is the error: "
            "Could not parse LLM output: `Your sway config starts waybar as the status bar.`"
        )
        result = extractor.run("Which bar?")
        assert result.status == "ok"
        assert result.answer == "Your sway config starts waybar as the status bar."

    def test_unrecoverable_parse_error(self, extractor, executor):
        executor.invoke.side_effect = ValueError(
            "An output parsing error occurred. This is the error: Could not parse LLM output: `Action: ???`"
        )
        result = extractor.run("Which bar?")
        assert result.status == "error"
        assert result.answer == AGENT_FAILURE_ANSWER

    def test_iteration_limit_is_an_error(self, extractor, executor):
        executor.invoke.return_value = {"output": "Agent stopped due to iteration limit or time limit."}
        result = extractor.run("Which bar?")
        assert result.status == "error"
        assert result.answer == AGENT_FAILURE_ANSWER

    def test_other_errors_propagate(self, extractor, executor):
        executor.invoke.side_effect = ValueError("invalid api key")
        with pytest.raises(ValueError):
            extractor.run("Which bar?")


class TestSearchTool:
    """Tests for the retrieval tool exposed to the agent."""

    def test_formats_passages(self, extractor, retrieval_pipeline):
        observation = extractor._search_files('"waybar"\n')
        retrieval_pipeline.retrieve.assert_called_once_with("waybar")
        assert "/cfg/sway/config" in observation

    def test_no_passages(self, extractor, retrieval_pipeline):
        retrieval_pipeline.retrieve.return_value = []
        assert extractor._search_files("waybar") == NO_PASSAGES_OBSERVATION


class TestReactLoop:
    """Tests running the real ReAct executor over a scripted model."""

    def test_tool_then_final_answer(self, retrieval_pipeline):
        llm = FakeListLLM(
            responses=[
                "I should look at the sway config.\nAction: search_personal_files\nAction Input: sway bar",
                "I now know the final answer\nFinal Answer: Sway uses waybar.",
            ]
        )
        extractor = AgentAnswerExtractor(llm=llm, retrieval_pipeline=retrieval_pipeline, max_iterations=3)

        result = extractor.run("Which bar does sway use?")

        assert result.status == "ok"
        assert result.answer == "Sway uses waybar."
        retrieval_pipeline.retrieve.assert_called_once_with("sway bar")

    def test_answer_and_action_in_one_step_is_recovered(self, retrieval_pipeline):
        llm = FakeListLLM(
            responses=[
                "Final Answer: Use waybar's config.\nAction: search_personal_files\nAction Input: waybar",
            ]
        )
        extractor = AgentAnswerExtractor(llm=llm, retrieval_pipeline=retrieval_pipeline, max_iterations=3)

        result = extractor.run("Which bar?")

        assert result.status == "ok"
        assert result.answer == "Use waybar's config."
        retrieval_pipeline.retrieve.assert_not_called()

    def test_transient_model_error_is_retried(self, retrieval_pipeline):
        llm = FlakyListLLM(responses=["I now know the final answer\nFinal Answer: Sway uses waybar."])
        extractor = AgentAnswerExtractor(
            llm=llm, retrieval_pipeline=retrieval_pipeline, max_iterations=3, max_attempts=2
        )

        result = extractor.run("Which bar?")

        assert result.status == "ok"
        assert result.answer == "Sway uses waybar."
        assert llm.failures == 0

    def test_model_error_without_retries_propagates(self, retrieval_pipeline):
        llm = FlakyListLLM(responses=["Final Answer: unused"])
        extractor = AgentAnswerExtractor(llm=llm, retrieval_pipeline=retrieval_pipeline, max_iterations=3)

        with pytest.raises(ConnectionError):
            extractor.run("Which bar?")
