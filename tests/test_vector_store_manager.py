"""
Unit tests for VectorStoreManager.
"""

from unittest.mock import MagicMock, Mock, patch

import pytest
from langchain_core.documents import Document

from src.rag.error_handler import UpstreamUnavailable
from src.rag.vector_store_manager import VectorStoreManager, source_filter


@pytest.fixture
def mock_store():
    return MagicMock()


@pytest.fixture
def manager(mock_store, caller):
    return VectorStoreManager(
        embedding_model=Mock(),
        collection_name="brain-collection",
        caller=caller,
        vectorstore=mock_store,
    )


def test_source_filter():
    assert source_filter("/a.md") == {"source": "/a.md"}
    assert source_filter("/a.md", {"last_modified_ts": {"$lt": 5.0}}) == {
        "$and": [{"source": "/a.md"}, {"last_modified_ts": {"$lt": 5.0}}]
    }


class TestProbe:
    """Tests for probe_latest and find_newer."""

    def test_probe_uses_metadata_lookup(self, manager, mock_store):
        mock_store.get.return_value = {"ids": ["x"], "metadatas": [{"source": "/a.md", "last_modified": "2024-01-01T00:00:00Z"}]}

        metadata = manager.probe_latest("/a.md")

        assert metadata["last_modified"] == "2024-01-01T00:00:00Z"
        mock_store.get.assert_called_once_with(where={"source": "/a.md"}, limit=1, include=["metadatas"])
        mock_store.similarity_search.assert_not_called()

    def test_probe_missing_path(self, manager, mock_store):
        mock_store.get.return_value = {"ids": [], "metadatas": []}
        assert manager.probe_latest("/missing") is None

    def test_find_newer_filters_on_timestamp(self, manager, mock_store):
        mock_store.get.return_value = {"ids": [], "metadatas": []}
        assert manager.find_newer("/a.md", 10.0) is None
        _, kwargs = mock_store.get.call_args
        assert kwargs["where"] == {"$and": [{"source": "/a.md"}, {"last_modified_ts": {"$gt": 10.0}}]}


class TestDelete:
    """Tests for delete."""

    def test_delete_removes_matching_ids(self, manager, mock_store):
        mock_store.get.return_value = {"ids": ["a", "b"]}
        assert manager.delete("/a.md") == 2
        mock_store.delete.assert_called_once_with(ids=["a", "b"])

    def test_delete_is_noop_when_nothing_matches(self, manager, mock_store):
        mock_store.get.return_value = {"ids": []}
        assert manager.delete("/a.md") == 0
        mock_store.delete.assert_not_called()

    def test_delete_failure_raises_upstream_unavailable(self, manager, mock_store):
        mock_store.get.side_effect = ConnectionError("refused")
        with pytest.raises(UpstreamUnavailable) as exc_info:
            manager.delete("/a.md")
        assert exc_info.value.service == "vector_store"
        assert exc_info.value.operation == "lookup_ids"


class TestUpsertAndSearch:
    """Tests for upsert and similarity_search."""

    def test_upsert_passes_ids(self, manager, mock_store):
        docs = [Document(page_content="x", metadata={"source": "/a"})]
        manager.upsert(docs, ["id-0"])
        mock_store.add_documents.assert_called_once_with(docs, ids=["id-0"])

    def test_upsert_empty_is_noop(self, manager, mock_store):
        manager.upsert([], [])
        mock_store.add_documents.assert_not_called()

    def test_upsert_rejects_mismatched_ids(self, manager):
        with pytest.raises(ValueError):
            manager.upsert([Document(page_content="x")], [])

    def test_similarity_search_returns_scored_docs(self, manager, mock_store):
        hit = (Document(page_content="x", metadata={"source": "/a"}), 0.8)
        mock_store.similarity_search_with_relevance_scores.return_value = [hit]

        results = manager.similarity_search("question", k=50)

        assert results == [hit]
        mock_store.similarity_search_with_relevance_scores.assert_called_once_with("question", k=50)


class TestConnection:
    """Tests for lazy connection and close."""

    def test_http_client_used_by_default(self, caller):
        with patch("src.rag.vector_store_manager.chromadb") as mock_chromadb, \
             patch("src.rag.vector_store_manager.Chroma") as mock_chroma:
            manager = VectorStoreManager(embedding_model=Mock(), collection_name="c", caller=caller, host="db", port=8000)
            assert manager.vectorstore is mock_chroma.return_value

            mock_chromadb.HttpClient.assert_called_once_with(host="db", port=8000)
            mock_chroma.assert_called_once_with(
                client=mock_chromadb.HttpClient.return_value,
                collection_name="c",
                embedding_function=manager.embedding_model,
            )

    def test_persistent_client_when_directory_set(self, caller, tmp_path):
        with patch("src.rag.vector_store_manager.chromadb") as mock_chromadb, \
             patch("src.rag.vector_store_manager.Chroma"):
            manager = VectorStoreManager(
                embedding_model=Mock(), collection_name="c", caller=caller, persist_directory=str(tmp_path)
            )
            manager.vectorstore
            mock_chromadb.PersistentClient.assert_called_once_with(path=str(tmp_path))

    def test_connection_failure_raises_runtime_error(self, caller):
        with patch("src.rag.vector_store_manager.chromadb") as mock_chromadb:
            mock_chromadb.HttpClient.side_effect = Exception("no server")
            manager = VectorStoreManager(embedding_model=Mock(), collection_name="c", caller=caller)
            with pytest.raises(RuntimeError):
                manager.vectorstore

    def test_close_drops_store(self, manager):
        manager.close()
        assert manager._vectorstore is None
