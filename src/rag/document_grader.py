"""
Document Grader Module

Second-pass reranking: each (question, passage) pair is scored jointly by a
JSON-mode LLM, then the top-N passages are kept.
"""

import logging
from typing import Any, Dict, List, Optional

from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable

from src.rag.error_handler import UpstreamUnavailable
from src.rag.models import RerankScore, RetrievedCandidate
from src.rag.resilience import ResilientCaller


SERVICE_NAME = "reranker"


class DocumentGrader:
    """
    Reranks retrieved passages against the literal question text.

    Responsibilities:
    - Score every candidate for relevance to the question
    - Sort candidates by score and keep the top-N
    """

    def __init__(
        self,
        json_llm: Any,
        caller: ResilientCaller,
        max_concurrency: int = 8,
        max_passage_chars: int = 2000,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize DocumentGrader.

        Args:
            json_llm: Language model for JSON-structured output
            caller: Resilient caller wrapping the scoring calls
            max_concurrency: Parallel scoring calls per rerank
            max_passage_chars: Passage text is truncated to this length before scoring
            logger: Optional logger instance
        """
        self.json_llm = json_llm
        self.caller = caller
        self.max_concurrency = max_concurrency
        self.max_passage_chars = max_passage_chars
        self.logger = logger or logging.getLogger(__name__)

        self.document_reranker_chain = self._create_document_reranker_chain()

    def _create_document_reranker_chain(self) -> Runnable:
        """
        Create chain for scoring a passage's relevance to a question.

        Returns:
            Runnable chain for passage scoring
        """
        try:
            parser = PydanticOutputParser(pydantic_object=RerankScore)

            prompt_template = (
                "You are a relevance scorer for a personal file search. Rate how useful this passage "
                "is for answering the given question, reading the question and passage together.\n\n"
                "Question: {question}\n\n"
                "Passage (from {source}):\n---\n{document_content}\n---\n\n"
                "Respond with a JSON object matching this schema:\n"
                "{format_instructions}\n\n"
                "Provide your JSON response:"
            )

            prompt = ChatPromptTemplate.from_template(
                template=prompt_template, partial_variables={"format_instructions": parser.get_format_instructions()}
            )

            chain = prompt | self.json_llm | parser

            self.logger.info("Document re-ranker chain created successfully.")
            return chain

        except Exception as e:
            error_msg = f"Failed to create document re-ranker chain: {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

    def rerank(self, query: str, candidates: List[RetrievedCandidate], top_n: int) -> List[RetrievedCandidate]:
        """
        Score candidates against the query and keep the best ones.

        A candidate whose scoring fails gets 0.0; if every scoring call fails
        the reranker is treated as unavailable.

        Args:
            query: The literal question text
            candidates: Passages from the broad similarity search
            top_n: Number of passages to keep

        Returns:
            Up to top_n candidates sorted by relevance score (highest first)

        Raises:
            UpstreamUnavailable: If the reranker could not score any candidate
        """
        if not candidates or top_n <= 0:
            self.logger.info("No documents to rerank.")
            return []

        self.logger.info(f"Re-ranking {len(candidates)} documents for question: '{query}'")

        inputs: List[Dict[str, str]] = [
            {
                "question": query,
                "source": candidate.source_path or "unknown",
                "document_content": candidate.text[: self.max_passage_chars],
            }
            for candidate in candidates
        ]

        results = self.caller.call(
            SERVICE_NAME,
            "score",
            self.document_reranker_chain.batch,
            inputs,
            config={"max_concurrency": self.max_concurrency},
            return_exceptions=True,
        )

        scored: List[RetrievedCandidate] = []
        failures = 0
        for idx, (candidate, result) in enumerate(zip(candidates, results)):
            if isinstance(result, Exception):
                failures += 1
                self.logger.error(
                    f"Error re-ranking document {idx+1} (source: {candidate.source_path}): {result}"
                )
                score = 0.0
            else:
                score = max(0.0, min(1.0, float(result.relevance_score)))
            scored.append(candidate.model_copy(update={"relevance_score": score}))

        if failures == len(candidates):
            raise UpstreamUnavailable(SERVICE_NAME, "score", RuntimeError("every scoring call failed"))

        scored.sort(key=lambda c: c.relevance_score, reverse=True)
        kept = scored[:top_n]
        self.logger.info(
            f"Finished re-ranking. Top document score: {kept[0].relevance_score if kept else 'n/a'}"
        )
        return kept
