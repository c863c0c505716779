"""
Factory for creating and configuring LLM instances.
"""
import logging
from typing import Any, Dict, Optional, Union

from langchain_community.chat_models import ChatOllama
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI


class LLMFactory:
    """Factory class for creating LLM instances based on provider configuration."""

    def __init__(
        self,
        llm_provider: str,
        llm_model_name: str,
        temperature: float,
        google_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 2,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the LLM factory.

        Args:
            llm_provider: The LLM provider ('google', 'openai', or 'ollama')
            llm_model_name: The model name to use
            temperature: The temperature parameter for generation
            google_api_key: Google API key (required for Google provider)
            openai_api_key: OpenAI API key (required for OpenAI provider)
            timeout_seconds: Request timeout passed to the provider client
            max_retries: Client-side retries performed by the provider SDK
            logger: Logger instance for logging
        """
        self.llm_provider = llm_provider
        self.llm_model_name = llm_model_name
        self.temperature = temperature
        self.google_api_key = google_api_key
        self.openai_api_key = openai_api_key
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.logger = logger or logging.getLogger(__name__)

    def create_llm(self, use_json_format: bool = False) -> Union[ChatGoogleGenerativeAI, ChatOpenAI, ChatOllama]:
        """
        Create an LLM instance based on the configured provider.

        Args:
            use_json_format: Whether to enable JSON output format

        Returns:
            An initialized LLM instance

        Raises:
            RuntimeError: If the provider is unsupported or LLM initialization fails
        """
        try:
            provider = self.llm_provider.lower()

            if provider == "google":
                return self._create_google_llm(use_json_format)
            if provider == "openai":
                return self._create_openai_llm(use_json_format)
            if provider == "ollama":
                return self._create_ollama_llm(use_json_format)

            error_msg = f"Unsupported LLM provider configured: '{self.llm_provider}'"
            self.logger.error(error_msg)
            raise ValueError(error_msg)
        except Exception as e:
            error_msg = f"Critical error initializing LLM (Provider: {self.llm_provider}, JSON: {use_json_format}): {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

    def _create_google_llm(self, use_json: bool) -> ChatGoogleGenerativeAI:
        """Create a Google Generative AI LLM instance."""
        self._require_key(self.google_api_key, "GOOGLE_API_KEY")

        config_kwargs: Dict[str, Any] = {
            "model": self.llm_model_name,
            "temperature": self.temperature,
            "google_api_key": self.google_api_key,
            "max_retries": self.max_retries,
        }
        if self.timeout_seconds is not None:
            config_kwargs["timeout"] = self.timeout_seconds
        if use_json:
            config_kwargs["response_mime_type"] = "application/json"

        google_llm = ChatGoogleGenerativeAI(**config_kwargs)
        self.logger.info(f"Google LLM '{self.llm_model_name}' initialized successfully (JSON: {use_json}).")
        return google_llm

    def _create_openai_llm(self, use_json: bool) -> ChatOpenAI:
        """Create an OpenAI LLM instance."""
        self._require_key(self.openai_api_key, "OPENAI_API_KEY")

        config_kwargs: Dict[str, Any] = {
            "model": self.llm_model_name,
            "temperature": self.temperature,
            "openai_api_key": self.openai_api_key,
            "max_retries": self.max_retries,
        }
        if self.timeout_seconds is not None:
            config_kwargs["timeout"] = self.timeout_seconds
        if use_json:
            config_kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}

        openai_llm = ChatOpenAI(**config_kwargs)
        self.logger.info(f"OpenAI LLM '{self.llm_model_name}' initialized successfully (JSON: {use_json}).")
        return openai_llm

    def _create_ollama_llm(self, use_json: bool) -> ChatOllama:
        """Create an Ollama LLM instance."""
        format_type = "json" if use_json else None
        config_kwargs: Dict[str, Any] = {
            "model": self.llm_model_name,
            "temperature": self.temperature,
            "format": format_type,
        }
        if self.timeout_seconds is not None:
            config_kwargs["timeout"] = max(1, int(self.timeout_seconds))

        ollama_llm = ChatOllama(**config_kwargs)
        self.logger.info(
            f"Ollama LLM '{self.llm_model_name}' initialized successfully (JSON: {use_json}, Format: {format_type})."
        )
        return ollama_llm

    def _require_key(self, key: Optional[str], name: str) -> None:
        if not key:
            error_msg = f"{name} is missing or empty. It is required for the configured LLM provider."
            self.logger.error(error_msg)
            raise ValueError(error_msg)
        self.logger.debug(f"{name} validation successful.")
