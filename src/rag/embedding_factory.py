"""
Factory for creating and configuring embedding model instances.
"""
import logging
from typing import Optional, Union

from langchain_google_genai import GoogleGenerativeAIEmbeddings
from langchain_openai import OpenAIEmbeddings


DEFAULT_GOOGLE_EMBEDDING_MODEL = "models/text-embedding-004"
DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"


class EmbeddingFactory:
    """Factory class for creating embedding model instances based on provider configuration."""

    def __init__(
        self,
        embedding_provider: str,
        embedding_model_name: Optional[str] = None,
        google_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 2,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the embedding factory.

        Args:
            embedding_provider: The embedding provider ('google' or 'openai')
            embedding_model_name: The embedding model name to use (optional, will use defaults)
            google_api_key: Google API key (required for Google provider)
            openai_api_key: OpenAI API key (required for OpenAI provider)
            timeout_seconds: Request timeout passed to the provider client
            max_retries: Client-side retries performed by the provider SDK
            logger: Logger instance for logging
        """
        self.embedding_provider = embedding_provider
        self.embedding_model_name = embedding_model_name
        self.google_api_key = google_api_key
        self.openai_api_key = openai_api_key
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.logger = logger or logging.getLogger(__name__)

    def create_embedding_model(self) -> Union[GoogleGenerativeAIEmbeddings, OpenAIEmbeddings]:
        """
        Create an embedding model instance based on the configured provider.

        Returns:
            An initialized embedding model instance

        Raises:
            RuntimeError: If the provider is unsupported or initialization fails
        """
        try:
            provider = self.embedding_provider.lower()

            if provider == "google":
                return self._create_google_embeddings()
            if provider == "openai":
                return self._create_openai_embeddings()

            error_msg = f"Unsupported embedding provider configured: '{self.embedding_provider}'"
            self.logger.error(error_msg)
            raise ValueError(error_msg)

        except Exception as e:
            error_msg = f"Critical error initializing embedding model (Provider: {self.embedding_provider}): {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

    def _create_google_embeddings(self) -> GoogleGenerativeAIEmbeddings:
        """Create a Google Generative AI embeddings instance."""
        if not self.google_api_key:
            raise ValueError("GOOGLE_API_KEY is missing or empty. It is required for Google embedding operations.")

        model_name = self.embedding_model_name or DEFAULT_GOOGLE_EMBEDDING_MODEL
        google_embeddings = GoogleGenerativeAIEmbeddings(
            model=model_name,
            google_api_key=self.google_api_key,
            request_options={"timeout": self.timeout_seconds} if self.timeout_seconds else None,
        )
        self.logger.info(f"Google Embeddings model '{model_name}' initialized successfully.")
        return google_embeddings

    def _create_openai_embeddings(self) -> OpenAIEmbeddings:
        """Create an OpenAI embeddings instance."""
        if not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY is missing or empty. It is required for OpenAI embedding operations.")

        model_name = self.embedding_model_name or DEFAULT_OPENAI_EMBEDDING_MODEL
        openai_embeddings = OpenAIEmbeddings(
            openai_api_key=self.openai_api_key,
            model=model_name,
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
        )
        self.logger.info(f"OpenAI Embeddings model '{model_name}' initialized successfully.")
        return openai_embeddings
