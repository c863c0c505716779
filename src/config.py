from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional, Literal

# Nested settings below are built at import time, so .env must be loaded first.
load_dotenv()


class APISettings(BaseSettings):
    """API Key Configurations"""

    google_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class LLMSettings(BaseSettings):
    """LLM Provider and Model Configurations"""

    llm_provider: Literal["google", "openai", "ollama"] = "google"
    llm_model_name: str = "gemini-2.5-flash"

    google_llm_model_name: Optional[str] = None
    openai_llm_model_name: Optional[str] = None
    ollama_llm_model_name: Optional[str] = None

    temperature: float = 0.3

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    def get_model_name_for_provider(self, provider: str) -> str:
        provider = provider.lower()
        if provider == "google" and self.google_llm_model_name:
            return self.google_llm_model_name
        if provider == "openai" and self.openai_llm_model_name:
            return self.openai_llm_model_name
        if provider == "ollama" and self.ollama_llm_model_name:
            return self.ollama_llm_model_name
        return self.llm_model_name


class EmbeddingSettings(BaseSettings):
    """Embedding Provider and Model Configurations"""

    embedding_provider: Literal["google", "openai"] = "google"
    embedding_model_name: Optional[str] = None

    google_embedding_model_name: str = "models/text-embedding-004"
    openai_embedding_model_name: str = "text-embedding-3-small"

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    def get_model_name_for_provider(self, provider: str) -> Optional[str]:
        provider = provider.lower()
        if provider == "google":
            return self.embedding_model_name or self.google_embedding_model_name
        if provider == "openai":
            return self.embedding_model_name or self.openai_embedding_model_name
        return self.embedding_model_name


class VectorStoreSettings(BaseSettings):
    """Chroma connection settings"""

    host: str = "localhost"
    port: int = 8000
    collection_name: str = "brain-collection"
    # When set, an embedded persistent Chroma is used instead of the HTTP server.
    persist_directory: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="CHROMA_", extra="ignore")


class EngineSettings(BaseSettings):
    """Ingestion engine settings"""

    replace_strategy: Literal["delete_then_add", "versioned_swap"] = "delete_then_add"

    markdown_chunk_size: int = 2000
    markdown_chunk_overlap: int = 200
    code_chunk_size: int = 1500
    code_chunk_overlap: int = 300
    generic_chunk_size: int = 1000
    generic_chunk_overlap: int = 100

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class RetrievalSettings(BaseSettings):
    """Retrieval and reranking settings"""

    candidate_k: int = 50
    top_n: int = 3
    min_relevance_score: Optional[float] = None

    model_config = SettingsConfigDict(env_prefix="RETRIEVAL_", extra="ignore")


class AgentSettings(BaseSettings):
    """Tool-using agent settings"""

    enabled: bool = False
    max_iterations: int = 5
    min_recovered_length: int = 20

    model_config = SettingsConfigDict(env_prefix="AGENT_", extra="ignore")


class QueueSettings(BaseSettings):
    """Redis-backed ingest queue settings"""

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    name: str = "ingest-queue"
    worker_concurrency: int = 1
    result_ttl: int = 3600  # 1 hour
    failure_ttl: int = 24 * 3600  # 24 hours
    max_retries: int = 3
    retry_intervals: List[int] = [10, 30, 60]
    lock_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(env_prefix="QUEUE_", extra="ignore")


class ResilienceSettings(BaseSettings):
    """Timeouts and retries around external calls"""

    call_timeout_seconds: float = 60.0
    max_attempts: int = 3

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class WatcherSettings(BaseSettings):
    """Local file watcher settings"""

    scan_paths_file: Optional[str] = None
    user_home: Optional[str] = None
    api_url: str = "http://localhost:3000/queue/ingest"
    cooldown_seconds: float = 10.0
    max_file_size_bytes: int = 25 * 1024 * 1024  # 25 MB

    model_config = SettingsConfigDict(env_prefix="WATCHER_", extra="ignore")


class LoggingSettings(BaseSettings):
    """Logging settings"""

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class AppSettings(BaseSettings):
    """Overall Application Settings"""

    api: APISettings = APISettings()
    llm: LLMSettings = LLMSettings()
    embedding: EmbeddingSettings = EmbeddingSettings()
    vector_store: VectorStoreSettings = VectorStoreSettings()
    engine: EngineSettings = EngineSettings()
    retrieval: RetrievalSettings = RetrievalSettings()
    agent: AgentSettings = AgentSettings()
    queue: QueueSettings = QueueSettings()
    resilience: ResilienceSettings = ResilienceSettings()
    watcher: WatcherSettings = WatcherSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")


settings = AppSettings()
