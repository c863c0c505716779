"""
Vector Store Manager Module

Adapts a LangChain Chroma store to the operations the ingestion and retrieval
pipelines need: upsert, delete by source path, single-entry probe, and
filtered similarity search. Every call goes through the resilient caller so
timeouts and retries are applied uniformly.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import chromadb
from langchain_community.vectorstores import Chroma
from langchain_core.documents import Document

from src.rag.resilience import ResilientCaller


SERVICE_NAME = "vector_store"


def source_filter(source_path: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a Chroma ``where`` clause matching one source path plus optional conditions."""
    clause: Dict[str, Any] = {"source": source_path}
    if not extra:
        return clause
    conditions = [clause] + [{key: value} for key, value in extra.items()]
    return {"$and": conditions}


class VectorStoreManager:
    """
    Manages vector store operations for the brain collection.

    Responsibilities:
    - Connect to Chroma (HTTP server or embedded persistent store)
    - Probe, delete and upsert entries keyed by source path
    - Run similarity search with an optional metadata filter
    """

    def __init__(
        self,
        embedding_model: Any,
        collection_name: str,
        caller: ResilientCaller,
        host: str = "localhost",
        port: int = 8000,
        persist_directory: Optional[str] = None,
        vectorstore: Optional[Chroma] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize VectorStoreManager.

        Args:
            embedding_model: Embedding model instance used by Chroma
            collection_name: Name of the Chroma collection
            caller: Resilient caller wrapping every store call
            host: Chroma server host
            port: Chroma server port
            persist_directory: If set, use an embedded persistent store instead of HTTP
            vectorstore: Pre-built store (skips connecting)
            logger: Optional logger instance
        """
        self.embedding_model = embedding_model
        self.collection_name = collection_name
        self.caller = caller
        self.host = host
        self.port = port
        self.persist_directory = persist_directory
        self.logger = logger or logging.getLogger(__name__)

        self._client: Optional[Any] = None
        self._vectorstore: Optional[Chroma] = vectorstore

    @property
    def vectorstore(self) -> Chroma:
        if self._vectorstore is None:
            self._vectorstore = self._connect()
        return self._vectorstore

    def _connect(self) -> Chroma:
        """
        Create the Chroma client and collection.

        Raises:
            RuntimeError: If the store cannot be initialized
        """
        try:
            if self.persist_directory:
                self.logger.info(f"Opening embedded Chroma store at {self.persist_directory}")
                self._client = chromadb.PersistentClient(path=self.persist_directory)
            else:
                self.logger.info(f"Connecting to Chroma at {self.host}:{self.port}")
                self._client = chromadb.HttpClient(host=self.host, port=self.port)

            store = Chroma(
                client=self._client,
                collection_name=self.collection_name,
                embedding_function=self.embedding_model,
            )
            self.logger.info(f"Vector store '{self.collection_name}' ready.")
            return store
        except Exception as e:
            error_msg = f"Failed to initialize vector store '{self.collection_name}': {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

    def probe_latest(self, source_path: str) -> Optional[Dict[str, Any]]:
        """
        Read the metadata of one stored entry for a source path.

        Uses a metadata lookup, so no embedding call is made.

        Args:
            source_path: The file path the entries were produced from

        Returns:
            Metadata dictionary of one entry, or None if the path is not indexed
        """
        result = self.caller.call(
            SERVICE_NAME,
            "probe",
            self.vectorstore.get,
            where=source_filter(source_path),
            limit=1,
            include=["metadatas"],
        )
        metadatas = (result or {}).get("metadatas") or []
        return metadatas[0] if metadatas else None

    def find_newer(self, source_path: str, last_modified_ts: float) -> Optional[Dict[str, Any]]:
        """Return metadata of one entry for the path stored with a strictly newer version, if any."""
        result = self.caller.call(
            SERVICE_NAME,
            "probe_newer",
            self.vectorstore.get,
            where=source_filter(source_path, {"last_modified_ts": {"$gt": last_modified_ts}}),
            limit=1,
            include=["metadatas"],
        )
        metadatas = (result or {}).get("metadatas") or []
        return metadatas[0] if metadatas else None

    def delete(self, source_path: str, extra_filter: Optional[Dict[str, Any]] = None) -> int:
        """
        Delete every entry for a source path. A no-op if nothing matches.

        Args:
            source_path: The file path whose entries are removed
            extra_filter: Additional metadata conditions, ANDed with the path

        Returns:
            Number of entries deleted
        """
        result = self.caller.call(
            SERVICE_NAME,
            "lookup_ids",
            self.vectorstore.get,
            where=source_filter(source_path, extra_filter),
            include=[],
        )
        ids = (result or {}).get("ids") or []
        if not ids:
            self.logger.debug(f"No entries to delete for '{source_path}'")
            return 0

        self.caller.call(SERVICE_NAME, "delete", self.vectorstore.delete, ids=ids)
        self.logger.info(f"Deleted {len(ids)} entries for '{source_path}'")
        return len(ids)

    def upsert(self, documents: List[Document], ids: List[str]) -> None:
        """
        Embed and upsert documents. Existing ids are overwritten.

        Args:
            documents: Chunks to store
            ids: One deterministic id per chunk
        """
        if not documents:
            return
        if len(documents) != len(ids):
            raise ValueError(f"Expected {len(documents)} ids, got {len(ids)}")

        self.caller.call(SERVICE_NAME, "upsert", self.vectorstore.add_documents, documents, ids=ids)
        self.logger.info(f"Upserted {len(documents)} docs into '{self.collection_name}'")

    def similarity_search(
        self,
        query: str,
        k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Tuple[Document, float]]:
        """
        Run a similarity search.

        Args:
            query: Query text (embedded by the store)
            k: Number of candidates to return
            filter: Optional Chroma metadata filter

        Returns:
            List of (document, relevance score) pairs, most similar first
        """
        kwargs: Dict[str, Any] = {"k": k}
        if filter:
            kwargs["filter"] = filter
        results = self.caller.call(
            SERVICE_NAME,
            "similarity_search",
            self.vectorstore.similarity_search_with_relevance_scores,
            query,
            **kwargs,
        )
        return list(results or [])

    def close(self) -> None:
        """Drop the store and client references."""
        if self._vectorstore is not None or self._client is not None:
            self.logger.info(f"Closing vector store '{self.collection_name}'")
        self._vectorstore = None
        self._client = None
