"""
Retrieval Pipeline Module

Broad similarity search for recall, then precision reranking.
"""

import logging
from typing import Any, List, Optional

from src.rag.models import RetrievedCandidate


class RetrievalPipeline:
    """Turns a question into a small, ranked set of context passages."""

    def __init__(
        self,
        vector_index: Any,
        reranker: Any,
        candidate_k: int = 50,
        top_n: int = 3,
        min_relevance_score: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize RetrievalPipeline.

        Args:
            vector_index: Store exposing similarity_search(query, k, filter)
            reranker: Object exposing rerank(query, candidates, top_n)
            candidate_k: Number of candidates pulled by the similarity search
            top_n: Number of passages kept after reranking
            min_relevance_score: Drop reranked passages scoring below this
            logger: Optional logger instance
        """
        self.vector_index = vector_index
        self.reranker = reranker
        self.candidate_k = candidate_k
        self.top_n = top_n
        self.min_relevance_score = min_relevance_score
        self.logger = logger or logging.getLogger(__name__)

    def retrieve(self, query: str) -> List[RetrievedCandidate]:
        """
        Retrieve the most relevant passages for a question.

        Args:
            query: The question text

        Returns:
            Candidates ordered most relevant first; empty when nothing matches
        """
        hits = self.vector_index.similarity_search(query, k=self.candidate_k)
        candidates = [
            RetrievedCandidate(
                text=doc.page_content,
                source_path=str(doc.metadata.get("source", "")),
                relevance_score=float(score),
            )
            for doc, score in hits
        ]
        self.logger.info(f"Similarity search returned {len(candidates)} candidates for '{query}'")

        if not candidates:
            return []

        reranked = self.reranker.rerank(query, candidates, self.top_n)
        if self.min_relevance_score is not None:
            reranked = [c for c in reranked if c.relevance_score >= self.min_relevance_score]

        self.logger.info(f"Kept {len(reranked)} passages after reranking")
        return reranked

    @staticmethod
    def format_candidates(candidates: List[RetrievedCandidate]) -> str:
        """Render passages as prompt context, one block per passage."""
        return "\n\n".join(
            f"[{idx+1}] {candidate.source_path or 'unknown'}\n{candidate.text}"
            for idx, candidate in enumerate(candidates)
        )
