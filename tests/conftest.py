"""
Pytest configuration and fixtures for the test suite.
"""

from typing import Any, Dict, List, Optional, Tuple

import pytest
from langchain_core.documents import Document

from src.rag.resilience import ResilientCaller


_OPERATORS = {
    "$lt": lambda value, bound: value < bound,
    "$gt": lambda value, bound: value > bound,
    "$eq": lambda value, bound: value == bound,
    "$ne": lambda value, bound: value != bound,
}


def _matches(metadata: Dict[str, Any], conditions: Optional[Dict[str, Any]]) -> bool:
    for key, condition in (conditions or {}).items():
        value = metadata.get(key)
        if isinstance(condition, dict):
            for op, bound in condition.items():
                if value is None or not _OPERATORS[op](value, bound):
                    return False
        elif value != condition:
            return False
    return True


class FakeVectorIndex:
    """In-memory stand-in for VectorStoreManager with the same operations."""

    def __init__(self):
        self.entries: Dict[str, Document] = {}
        self.calls: List[str] = []
        self.fail_on: Dict[str, Exception] = {}
        self.search_results: List[Tuple[Document, float]] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise self.fail_on[op]

    def _for_path(self, source_path: str, extra: Optional[Dict[str, Any]] = None) -> List[str]:
        return [
            entry_id
            for entry_id, doc in self.entries.items()
            if doc.metadata.get("source") == source_path and _matches(doc.metadata, extra)
        ]

    def probe_latest(self, source_path: str) -> Optional[Dict[str, Any]]:
        self._check("probe")
        ids = self._for_path(source_path)
        return dict(self.entries[ids[0]].metadata) if ids else None

    def find_newer(self, source_path: str, last_modified_ts: float) -> Optional[Dict[str, Any]]:
        self._check("probe_newer")
        ids = self._for_path(source_path, {"last_modified_ts": {"$gt": last_modified_ts}})
        return dict(self.entries[ids[0]].metadata) if ids else None

    def delete(self, source_path: str, extra_filter: Optional[Dict[str, Any]] = None) -> int:
        self._check("delete")
        ids = self._for_path(source_path, extra_filter)
        for entry_id in ids:
            del self.entries[entry_id]
        return len(ids)

    def upsert(self, documents: List[Document], ids: List[str]) -> None:
        self._check("upsert")
        for doc, entry_id in zip(documents, ids):
            self.entries[entry_id] = doc

    def similarity_search(self, query: str, k: int, filter: Optional[Dict[str, Any]] = None):
        self._check("similarity_search")
        return list(self.search_results[:k])

    def texts_for(self, source_path: str) -> List[str]:
        docs = [self.entries[i] for i in self._for_path(source_path)]
        return [d.page_content for d in sorted(docs, key=lambda d: d.metadata["chunk_index"])]


@pytest.fixture
def fake_index():
    """Empty in-memory vector index."""
    return FakeVectorIndex()


@pytest.fixture
def caller():
    """Resilient caller with a single attempt so failures surface immediately."""
    resilient_caller = ResilientCaller(timeout_seconds=5, max_attempts=1)
    yield resilient_caller
    resilient_caller.close()
