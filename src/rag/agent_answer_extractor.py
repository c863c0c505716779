"""
Agent Answer Extractor Module

Tool-augmented answering: a ReAct loop that may search the user's files
several times before answering, with best-effort recovery when the model's
output breaks the ReAct format.
"""

import logging
from typing import Any, Optional

from langchain.agents import AgentExecutor, create_react_agent
from langchain_core.exceptions import OutputParserException
from langchain_core.prompts import PromptTemplate
from langchain_core.tools import Tool

from src.rag.agent_recovery import RecoveryKind, recover_answer
from src.rag.answer_generator import NOT_FOUND_ANSWER
from src.rag.error_handler import AgentParseError
from src.rag.models import AnswerResult
from src.rag.retrieval_pipeline import RetrievalPipeline


AGENT_FAILURE_ANSWER = "Sorry, I couldn't produce an answer for this question."
NO_PASSAGES_OBSERVATION = "No relevant passages were found in the user's files."
SEARCH_TOOL_NAME = "search_personal_files"

PARSE_ERROR_MARKERS = (
    "output parsing error",
    "Could not parse LLM output",
    "both a final answer and a parse-able action",
)
EARLY_STOP_PREFIX = "Agent stopped due to"
OBSERVATION_STOP = "\nObservation"

REACT_PROMPT_TEMPLATE = """Answer the following question about the user's personal files as best you can. You have access to the following tools:

{tools}

Use the following format:

Question: the input question you must answer
Thought: you should always think about what to do
Action: the action to take, should be one of [{tool_names}]
Action Input: the input to the action
Observation: the result of the action
... (this Thought/Action/Action Input/Observation can repeat N times)
Thought: I now know the final answer
Final Answer: the final answer to the original input question

Only use information returned by the tools. If the files do not contain the answer, the final answer must be exactly: "{not_found}"

Begin!

Question: {input}
Thought:{agent_scratchpad}"""


class AgentAnswerExtractor:
    """Runs the ReAct loop and turns its result, or its parse failure, into an AnswerResult."""

    def __init__(
        self,
        llm: Any,
        retrieval_pipeline: RetrievalPipeline,
        max_iterations: int = 5,
        min_recovered_length: int = 20,
        max_attempts: int = 1,
        executor: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize AgentAnswerExtractor.

        Args:
            llm: Language model driving the ReAct loop
            retrieval_pipeline: Pipeline exposed to the agent as a search tool
            max_iterations: Upper bound on thought/action/observation steps
            min_recovered_length: Shortest free text accepted as a recovered answer
            max_attempts: Attempts per LLM call inside the loop (retried with backoff)
            executor: Pre-built executor (skips building the agent)
            logger: Optional logger instance
        """
        self.llm = llm
        self.retrieval_pipeline = retrieval_pipeline
        self.max_iterations = max_iterations
        self.min_recovered_length = min_recovered_length
        self.max_attempts = max(1, max_attempts)
        self.logger = logger or logging.getLogger(__name__)

        self.executor = executor or self._create_agent_executor()

    def _search_files(self, query: str) -> str:
        candidates = self.retrieval_pipeline.retrieve(query.strip().strip('"'))
        if not candidates:
            return NO_PASSAGES_OBSERVATION
        return RetrievalPipeline.format_candidates(candidates)

    def _create_agent_executor(self) -> AgentExecutor:
        """
        Build the ReAct agent with the retrieval pipeline as its only tool.

        Returns:
            AgentExecutor that raises on output parsing errors

        Raises:
            RuntimeError: If the agent cannot be built
        """
        try:
            tools = [
                Tool(
                    name=SEARCH_TOOL_NAME,
                    func=self._search_files,
                    description=(
                        "Searches the user's indexed local files (notes, code, configs) and returns "
                        "the most relevant passages. Input is a search query."
                    ),
                )
            ]
            prompt = PromptTemplate.from_template(REACT_PROMPT_TEMPLATE).partial(not_found=NOT_FOUND_ANSWER)
            # Model calls inside the loop bypass the resilient caller.
            agent_llm = self.llm.bind(stop=[OBSERVATION_STOP])
            if self.max_attempts > 1:
                agent_llm = agent_llm.with_retry(
                    retry_if_exception_type=(Exception,),
                    wait_exponential_jitter=True,
                    stop_after_attempt=self.max_attempts,
                )
            agent = create_react_agent(agent_llm, tools, prompt, stop_sequence=False)
            executor = AgentExecutor(
                agent=agent,
                tools=tools,
                max_iterations=self.max_iterations,
                handle_parsing_errors=False,
                verbose=False,
            )
            self.logger.info(f"ReAct agent created with max_iterations={self.max_iterations}.")
            return executor
        except Exception as e:
            error_msg = f"Failed to create agent executor: {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

    def run(self, query: str) -> AnswerResult:
        """
        Answer a question through the agent loop.

        Args:
            query: The user's question

        Returns:
            AnswerResult; status "error" only when no answer could be recovered
        """
        self.logger.info(f"Starting agent loop for query: {query}")
        try:
            output = self._invoke(query)
        except AgentParseError as e:
            self.logger.warning("Agent loop ended in a parse failure")
            return self._recover(e.raw_error)

        if not output or output.startswith(EARLY_STOP_PREFIX):
            self.logger.warning(f"Agent stopped without an answer: {output!r}")
            return AnswerResult(status="error", answer=AGENT_FAILURE_ANSWER)

        self.logger.info("Agent loop completed")
        return AnswerResult(status="ok", answer=output)

    def _invoke(self, query: str) -> str:
        try:
            result = self.executor.invoke({"input": query})
        except OutputParserException as e:
            raise AgentParseError(str(e)) from e
        except ValueError as e:
            if not any(marker in str(e) for marker in PARSE_ERROR_MARKERS):
                raise
            raise AgentParseError(str(e)) from e

        return str(result.get("output", "")).strip()

    def _recover(self, raw_error: str) -> AnswerResult:
        recovery = recover_answer(raw_error, min_length=self.min_recovered_length)
        if recovery.kind == RecoveryKind.UNRECOVERABLE:
            self.logger.error(f"Agent output could not be recovered: {raw_error}")
            return AnswerResult(status="error", answer=AGENT_FAILURE_ANSWER)

        self.logger.warning(f"Agent output recovered ({recovery.kind.value}) from parse error.")
        return AnswerResult(status="ok", answer=recovery.answer)
