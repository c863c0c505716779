"""
Chunking strategy selection and the text splitters that implement it.
"""
import logging
from pathlib import PurePath
from typing import Dict, List, Optional

from langchain_text_splitters import Language, RecursiveCharacterTextSplitter, TextSplitter

from src.rag.models import ChunkingConfig, FileCategory


MARKDOWN_EXTENSIONS = frozenset({".md", ".markdown", ".mdx"})

# Extension -> LangChain language used for boundary-aware splitting.
CODE_EXTENSIONS: Dict[str, Language] = {
    ".py": Language.PYTHON,
    ".pyi": Language.PYTHON,
    ".go": Language.GO,
    ".rs": Language.RUST,
    ".java": Language.JAVA,
    ".kt": Language.KOTLIN,
    ".kts": Language.KOTLIN,
    ".scala": Language.SCALA,
    ".c": Language.CPP,
    ".h": Language.CPP,
    ".cc": Language.CPP,
    ".cpp": Language.CPP,
    ".cxx": Language.CPP,
    ".hpp": Language.CPP,
    ".hh": Language.CPP,
    ".cs": Language.CSHARP,
    ".js": Language.JS,
    ".jsx": Language.JS,
    ".mjs": Language.JS,
    ".cjs": Language.JS,
    ".ts": Language.TS,
    ".tsx": Language.TS,
    ".php": Language.PHP,
    ".rb": Language.RUBY,
    ".swift": Language.SWIFT,
    ".sol": Language.SOL,
    ".cob": Language.COBOL,
    ".cbl": Language.COBOL,
    ".proto": Language.PROTO,
    ".html": Language.HTML,
    ".htm": Language.HTML,
    ".rst": Language.RST,
    ".tex": Language.LATEX,
}

GENERIC_SEPARATORS: List[str] = ["\n\n", "\n", ". ", " ", ""]


class ChunkingStrategySelector:
    """Maps a file path to the chunking configuration used to split it."""

    def __init__(
        self,
        markdown_chunk_size: int = 2000,
        markdown_chunk_overlap: int = 200,
        code_chunk_size: int = 1500,
        code_chunk_overlap: int = 300,
        generic_chunk_size: int = 1000,
        generic_chunk_overlap: int = 100,
    ):
        self._params = {
            FileCategory.MARKDOWN: (markdown_chunk_size, markdown_chunk_overlap),
            FileCategory.CODE: (code_chunk_size, code_chunk_overlap),
            FileCategory.GENERIC: (generic_chunk_size, generic_chunk_overlap),
        }

    def select(self, file_path: str) -> ChunkingConfig:
        """
        Select the chunking configuration for a file.

        Markdown wins over the code table, and anything unrecognized falls
        through to the generic configuration. Never raises.

        Args:
            file_path: Path or name of the file

        Returns:
            ChunkingConfig for the file's category
        """
        extension = self._extension(file_path)

        if extension in MARKDOWN_EXTENSIONS:
            return self._config(FileCategory.MARKDOWN, Language.MARKDOWN.value)

        language = CODE_EXTENSIONS.get(extension)
        if language is not None:
            return self._config(FileCategory.CODE, language.value)

        return self._config(FileCategory.GENERIC, None)

    def _config(self, kind: FileCategory, language_hint: Optional[str]) -> ChunkingConfig:
        chunk_size, chunk_overlap = self._params[kind]
        return ChunkingConfig(
            kind=kind,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            language_hint=language_hint,
        )

    @staticmethod
    def _extension(file_path: str) -> str:
        try:
            return PurePath(file_path or "").suffix.lower()
        except (TypeError, ValueError):
            return ""


class TextSplitterFactory:
    """Factory class for creating text splitter instances from a chunking configuration."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the text splitter factory.

        Args:
            logger: Logger instance for logging
        """
        self.logger = logger or logging.getLogger(__name__)
        self._cache: Dict[ChunkingConfig, TextSplitter] = {}

    def create_text_splitter(self, config: ChunkingConfig) -> TextSplitter:
        """
        Create (or reuse) the splitter for a chunking configuration.

        Args:
            config: The configuration chosen by ChunkingStrategySelector

        Returns:
            A text splitter instance

        Raises:
            RuntimeError: If text splitter initialization fails
        """
        cached = self._cache.get(config)
        if cached is not None:
            return cached

        try:
            if config.kind in (FileCategory.MARKDOWN, FileCategory.CODE) and config.language_hint:
                splitter = self._create_language_splitter(config)
            else:
                splitter = self._create_default_splitter(config)
        except Exception as e:
            error_msg = f"Critical error initializing text splitter (Kind: {config.kind.value}): {e}"
            self.logger.critical(error_msg, exc_info=True)
            raise RuntimeError(error_msg) from e

        self._cache[config] = splitter
        return splitter

    def _create_language_splitter(self, config: ChunkingConfig) -> RecursiveCharacterTextSplitter:
        """Create a recursive splitter that prefers the language's own block boundaries."""
        language = Language(config.language_hint)
        splitter = RecursiveCharacterTextSplitter.from_language(
            language=language,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
        )
        self.logger.info(
            f"Language splitter created for '{language.value}' with chunk_size={config.chunk_size}, "
            f"chunk_overlap={config.chunk_overlap}."
        )
        return splitter

    def _create_default_splitter(self, config: ChunkingConfig) -> RecursiveCharacterTextSplitter:
        """Create the generic recursive character splitter."""
        splitter = RecursiveCharacterTextSplitter(
            separators=GENERIC_SEPARATORS,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            length_function=len,
        )
        self.logger.info(
            f"Default splitter created with chunk_size={config.chunk_size}, chunk_overlap={config.chunk_overlap}."
        )
        return splitter
