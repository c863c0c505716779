"""
Pydantic models and enums shared by the ingestion and answering pipelines.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC representation stored in index metadata."""
    return to_utc(value).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (a trailing 'Z' is accepted)."""
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


class FileCategory(str, Enum):
    """Closed set of chunking categories a file can fall into."""

    MARKDOWN = "markdown"
    CODE = "code"
    GENERIC = "generic"


class ChunkingConfig(BaseModel):
    """Chunking parameters selected for one file."""

    model_config = ConfigDict(frozen=True)

    kind: FileCategory
    chunk_size: int
    chunk_overlap: int
    language_hint: Optional[str] = None


class SourceDocument(BaseModel):
    """Current authoritative state of one file."""

    file_path: str
    content: str
    last_modified: datetime

    @field_validator("last_modified")
    @classmethod
    def _normalize_last_modified(cls, value: datetime) -> datetime:
        return to_utc(value)


class Chunk(BaseModel):
    """A slice of a SourceDocument tagged with its parent's version."""

    text: str
    source_path: str
    last_modified: datetime
    sequence_index: int
    kind: FileCategory = FileCategory.GENERIC
    language: Optional[str] = None

    def to_metadata(self) -> Dict[str, Any]:
        """Metadata persisted alongside the chunk in the vector store."""
        return {
            "source": self.source_path,
            "last_modified": format_timestamp(self.last_modified),
            "last_modified_ts": to_utc(self.last_modified).timestamp(),
            "chunk_index": self.sequence_index,
            "chunk_kind": self.kind.value,
            "language": self.language or "",
        }


class RetrievedCandidate(BaseModel):
    """A passage returned by the retrieval pipeline for one query."""

    text: str
    source_path: str
    relevance_score: float = 0.0


class AnswerResult(BaseModel):
    """Outcome of an ask request."""

    status: Literal["ok", "error"]
    answer: str


class IngestStatus(str, Enum):
    SKIPPED = "skipped"
    INDEXED = "indexed"
    FAILED = "failed"


class IngestOutcome(BaseModel):
    """Result of one ingestion attempt."""

    status: IngestStatus
    file_path: str
    chunk_count: int = 0
    reason: Optional[str] = None

    @classmethod
    def skipped(cls, file_path: str) -> "IngestOutcome":
        return cls(status=IngestStatus.SKIPPED, file_path=file_path)

    @classmethod
    def indexed(cls, file_path: str, chunk_count: int) -> "IngestOutcome":
        return cls(status=IngestStatus.INDEXED, file_path=file_path, chunk_count=chunk_count)

    @classmethod
    def failed(cls, file_path: str, reason: str) -> "IngestOutcome":
        return cls(status=IngestStatus.FAILED, file_path=file_path, reason=reason)


class IngestRequest(BaseModel):
    """Ingest payload as received from the watcher or the HTTP API."""

    model_config = ConfigDict(populate_by_name=True)

    file_path: str = Field(alias="filePath", min_length=1)
    content: str = Field(min_length=1)
    last_modified: str = Field(alias="lastModified")

    @field_validator("file_path", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("last_modified")
    @classmethod
    def _iso8601(cls, value: str) -> str:
        try:
            parse_timestamp(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"lastModified must be an ISO-8601 timestamp: {e}") from e
        return value

    def to_source_document(self) -> SourceDocument:
        return SourceDocument(
            file_path=self.file_path,
            content=self.content,
            last_modified=parse_timestamp(self.last_modified),
        )


class AskRequest(BaseModel):
    """Ask payload."""

    query: str = Field(min_length=1)

    @field_validator("query")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class RerankScore(BaseModel):
    """
    Pydantic model for contextual re-ranking scores.
    """

    relevance_score: float = Field(
        description="A score from 0.0 to 1.0 indicating the passage's direct relevance to answering the question."
    )
    justification: str = Field(default="", description="A brief justification for the assigned score.")
