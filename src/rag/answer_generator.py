"""
Answer Generator Module

Grounded answer generation from retrieved passages.
"""

import logging
from typing import Any, List, Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable

from src.rag.models import RetrievedCandidate
from src.rag.resilience import ResilientCaller
from src.rag.retrieval_pipeline import RetrievalPipeline


NOT_FOUND_ANSWER = "I couldn't find this information in your files."

SERVICE_NAME = "llm"


class AnswerGenerator:
    """
    Generates answers that only use the supplied context.

    When the context does not contain the answer the model must reply with
    NOT_FOUND_ANSWER verbatim, so callers can match on it.
    """

    def __init__(
        self,
        llm: Any,
        caller: ResilientCaller,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize AnswerGenerator.

        Args:
            llm: Language model for text generation
            caller: Resilient caller wrapping the LLM call
            logger: Optional logger instance
        """
        self.llm = llm
        self.caller = caller
        self.logger = logger or logging.getLogger(__name__)

        self.answer_generation_chain = self._create_answer_generation_chain()

    def _create_answer_generation_chain(self) -> Runnable:
        """
        Create chain for generating answers from context passages.

        Returns:
            Runnable chain for answer generation
        """
        try:
            system_prompt = (
                "You are a helpful assistant. Answer the user's question using ONLY the context below, "
                "which was taken from the user's own files.\n"
                f'If the answer is not in the context, reply exactly: "{NOT_FOUND_ANSWER}"\n'
                "Be concise and direct.\n\n"
                "Context:\n{context}"
            )

            prompt = ChatPromptTemplate.from_messages(
                [
                    ("system", system_prompt),
                    ("human", "Question: {question}"),
                ]
            )

            chain = prompt | self.llm | StrOutputParser()

            self.logger.info("Answer generation chain created successfully.")
            return chain

        except Exception as e:
            error_msg = f"Failed to create answer generation chain: {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

    def answer(self, query: str, context_passages: List[RetrievedCandidate]) -> str:
        """
        Generate an answer from context passages.

        Args:
            query: The user's question
            context_passages: Reranked passages, most relevant first

        Returns:
            The model's answer, or NOT_FOUND_ANSWER when there is no context

        Raises:
            UpstreamUnavailable: If the LLM call fails after retries
        """
        if not context_passages:
            self.logger.info("No context passages; returning not-found answer without calling the LLM.")
            return NOT_FOUND_ANSWER

        context = RetrievalPipeline.format_candidates(context_passages)
        generated_text = self.caller.call(
            SERVICE_NAME,
            "generate",
            self.answer_generation_chain.invoke,
            {"context": context, "question": query},
        )
        return generated_text.strip()
