"""
FileLens - Local Semantic Search for CSV, JSON and Text Files

Builds an index of meaning-bearing fragments from one file or a whole
directory and ranks them against free-text queries by embedding similarity,
entirely on the local machine.

Key Features:
- File-type aware chunking (table rows, JSON paths, paragraphs / lines)
- Local sentence-transformers embeddings, or OpenAI as a remote provider
- Explicit model lifecycle (checking, download, load, ready)
- Cosine-similarity ranking with deterministic tie-breaking
- Content-addressed SQLite cache of built indexes, versioned by model
- Directory-wide search with per-file deduplication
- Latest-request-wins query sessions with debouncing
"""

from .config import FileLensConfig
from .errors import (
    DimensionMismatchError,
    EmbeddingFailedError,
    FileLensError,
    ModelNotReadyError,
    ModelUnavailableError,
    NoContentError,
    NoIndexError,
    StorageError,
)
from .models import (
    DirectoryIndex,
    FileRef,
    Fragment,
    Index,
    IndexEntry,
    ModelStatus,
    SearchResult,
    StatusReport,
)
from .chunking import chunk_for_search, chunk_file_preview
from .embeddings import (
    BaseEmbeddingProvider,
    EmbeddingCache,
    HuggingFaceEmbedding,
    OpenAIEmbedding,
    create_embedding_provider,
)
from .builder import IndexBuilder
from .storage import IndexCache, content_hash
from .search import SearchEngine, cosine_similarity
from .directory import DirectoryIndexer
from .loaders import discover_files, fetch_file, load_file
from .session import SearchOutcome, SearchSession, SearchStatus
from .filelens import FileLens, create_filelens

__version__ = "0.3.0"
__all__ = [
    # Core
    "FileLensConfig",
    "FileLens",
    "create_filelens",
    # Models
    "Fragment",
    "IndexEntry",
    "Index",
    "DirectoryIndex",
    "SearchResult",
    "FileRef",
    "ModelStatus",
    "StatusReport",
    # Errors
    "FileLensError",
    "NoContentError",
    "ModelUnavailableError",
    "ModelNotReadyError",
    "EmbeddingFailedError",
    "NoIndexError",
    "DimensionMismatchError",
    "StorageError",
    # Chunking & Loading
    "chunk_for_search",
    "chunk_file_preview",
    "load_file",
    "fetch_file",
    "discover_files",
    # Embeddings
    "BaseEmbeddingProvider",
    "EmbeddingCache",
    "HuggingFaceEmbedding",
    "OpenAIEmbedding",
    "create_embedding_provider",
    # Components
    "IndexBuilder",
    "IndexCache",
    "content_hash",
    "SearchEngine",
    "cosine_similarity",
    "DirectoryIndexer",
    "SearchSession",
    "SearchOutcome",
    "SearchStatus",
]
