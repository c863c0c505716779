"""
Ingestion Coordinator Module

Decides whether a file needs (re)indexing and replaces its chunk set in the
vector store.
"""

import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from langchain_core.documents import Document

from src.rag.error_handler import IngestionFailed
from src.rag.models import (
    Chunk,
    ChunkingConfig,
    IngestOutcome,
    SourceDocument,
    parse_timestamp,
    to_utc,
)
from src.rag.text_splitter_factory import ChunkingStrategySelector, TextSplitterFactory


DELETE_THEN_ADD = "delete_then_add"
VERSIONED_SWAP = "versioned_swap"


def chunk_id(source_path: str, last_modified: datetime, sequence_index: int) -> str:
    """Deterministic entry id: same file, version and position always map to the same id."""
    digest = hashlib.sha1(source_path.encode("utf-8")).hexdigest()
    version = int(to_utc(last_modified).timestamp() * 1_000_000)
    return f"{digest}-{version}-{sequence_index}"


class IngestionCoordinator:
    """
    Keeps one file's chunk set in the vector store in step with its latest content.

    The staleness guard compares the incoming last-modified time with the one
    stored on an existing entry; only strictly newer content is re-indexed.
    """

    def __init__(
        self,
        vector_index: Any,
        selector: ChunkingStrategySelector,
        splitter_factory: TextSplitterFactory,
        replace_strategy: str = DELETE_THEN_ADD,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize IngestionCoordinator.

        Args:
            vector_index: Store exposing probe_latest/find_newer/delete/upsert
            selector: Chooses the chunking configuration per file
            splitter_factory: Builds splitters for a chunking configuration
            replace_strategy: "delete_then_add" or "versioned_swap"
            logger: Optional logger instance
        """
        if replace_strategy not in (DELETE_THEN_ADD, VERSIONED_SWAP):
            raise ValueError(f"Unsupported replace strategy: '{replace_strategy}'")

        self.vector_index = vector_index
        self.selector = selector
        self.splitter_factory = splitter_factory
        self.replace_strategy = replace_strategy
        self.logger = logger or logging.getLogger(__name__)

    def ingest(self, doc: SourceDocument) -> IngestOutcome:
        """
        Index a document unless the index already holds content at least as new.

        Args:
            doc: Current state of the file

        Returns:
            Skipped or Indexed outcome

        Raises:
            IngestionFailed: If any collaborator call fails; carries the Failed outcome
        """
        try:
            if self._is_current(doc):
                self.logger.info(f"SKIPPED (up to date): {doc.file_path}")
                return IngestOutcome.skipped(doc.file_path)

            config = self.selector.select(doc.file_path)
            chunks = self.split(doc, config)

            self.logger.info(
                f"Re-indexing {doc.file_path} ({self.replace_strategy}, {config.kind.value}, {len(chunks)} chunks)"
            )
            if self.replace_strategy == VERSIONED_SWAP:
                self._versioned_swap(doc, chunks)
            else:
                self._delete_then_add(doc, chunks)

            self.logger.info(f"File {doc.file_path} re-indexed. {len(chunks)} chunks created.")
            return IngestOutcome.indexed(doc.file_path, len(chunks))

        except Exception as e:
            outcome = IngestOutcome.failed(doc.file_path, str(e))
            self.logger.error(f"Ingestion failed for {doc.file_path}: {e}", exc_info=True)
            raise IngestionFailed(outcome, cause=e) from e

    def _is_current(self, doc: SourceDocument) -> bool:
        existing = self.vector_index.probe_latest(doc.file_path)
        if not existing:
            return False

        stored = self._stored_last_modified(existing)
        if stored is None:
            self.logger.warning(f"Entry for {doc.file_path} has no readable last_modified; re-indexing")
            return False
        return stored >= doc.last_modified

    @staticmethod
    def _stored_last_modified(metadata: Dict[str, Any]) -> Optional[datetime]:
        raw = metadata.get("last_modified")
        if not raw:
            return None
        try:
            return parse_timestamp(str(raw))
        except ValueError:
            return None

    def split(self, doc: SourceDocument, config: ChunkingConfig) -> List[Chunk]:
        """
        Split a document into ordered chunks tagged with its path and version.

        Args:
            doc: Document to split
            config: Chunking configuration for the document

        Returns:
            Ordered list of chunks
        """
        splitter = self.splitter_factory.create_text_splitter(config)
        pieces = [piece for piece in splitter.split_text(doc.content) if piece.strip()]
        return [
            Chunk(
                text=piece,
                source_path=doc.file_path,
                last_modified=doc.last_modified,
                sequence_index=idx,
                kind=config.kind,
                language=config.language_hint,
            )
            for idx, piece in enumerate(pieces)
        ]

    @staticmethod
    def _to_documents(chunks: List[Chunk]) -> Tuple[List[Document], List[str]]:
        documents = [Document(page_content=chunk.text, metadata=chunk.to_metadata()) for chunk in chunks]
        ids = [chunk_id(chunk.source_path, chunk.last_modified, chunk.sequence_index) for chunk in chunks]
        return documents, ids

    def _delete_then_add(self, doc: SourceDocument, chunks: List[Chunk]) -> None:
        # Not atomic: a failure after the delete leaves the file unindexed until the next success.
        self.vector_index.delete(doc.file_path)
        documents, ids = self._to_documents(chunks)
        self.vector_index.upsert(documents, ids)

    def _versioned_swap(self, doc: SourceDocument, chunks: List[Chunk]) -> None:
        version_ts = doc.last_modified.timestamp()
        documents, ids = self._to_documents(chunks)
        self.vector_index.upsert(documents, ids)
        self.vector_index.delete(doc.file_path, {"last_modified_ts": {"$lt": version_ts}})

        # A newer version may have landed between our probe and our write.
        if self.vector_index.find_newer(doc.file_path, version_ts):
            self.logger.warning(f"Newer version of {doc.file_path} indexed concurrently; discarding this one")
            self.vector_index.delete(doc.file_path, {"last_modified_ts": {"$eq": version_ts}})
