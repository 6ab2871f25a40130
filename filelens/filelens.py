"""Main FileLens search engine orchestrator."""

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .builder import IndexBuilder
from .chunking import chunk_for_search
from .config import FileLensConfig
from .directory import DirectoryIndexer, FetchFn
from .embeddings import BaseEmbeddingProvider, create_embedding_provider
from .loaders import discover_files, fetch_file, load_file
from .models import DirectoryIndex, FileRef, Index, ModelStatus, SearchResult, StatusReport
from .search import SearchEngine
from .session import SearchSession
from .storage import IndexCache, content_hash

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class FileLens:
    """
    Local semantic search over single files and directories.

    Owns one embedding provider, one index cache and the builder, search
    engine and directory indexer that share them. Builds for the same
    content, model and file type are coalesced: a second request while one
    is running waits for the first and receives the same Index.
    """

    def __init__(
        self,
        config: Optional[FileLensConfig] = None,
        *,
        embedder: Optional[BaseEmbeddingProvider] = None,
        cache: Optional[IndexCache] = None,
        fetch: FetchFn = fetch_file,
    ):
        self.config = config or FileLensConfig()
        self._lock = threading.RLock()
        self._inflight: Dict[Tuple[str, str, str], Future] = {}

        # Initialize components
        self.embedder = embedder or create_embedding_provider(
            self.config.embedding_provider,
            self.config.embedding_model,
            batch_size=self.config.embed_batch_size,
        )
        if cache is None and self.config.cache_enabled:
            cache = IndexCache(self.config.cache_path)
        self.cache = cache
        self.builder = IndexBuilder(self.embedder)
        self.search_engine = SearchEngine(
            self.embedder,
            default_k=self.config.default_k,
            directory_k=self.config.directory_k,
        )
        self.directory_indexer = DirectoryIndexer(
            self.embedder,
            fetch,
            max_fragments=self.config.dir_max_fragments,
            slice_chars=self.config.dir_slice_chars,
            extensions=self.config.supported_extensions,
        )

    # ============ Model lifecycle ============

    @property
    def status(self) -> StatusReport:
        return self.embedder.report

    def check_availability(self) -> StatusReport:
        return self.embedder.check_availability()

    def load_model(self, on_progress: Optional[ProgressCallback] = None) -> None:
        self.embedder.load(on_progress)

    def unload_model(self) -> None:
        self.embedder.unload()

    # ============ Indexing ============

    def build_index(
        self,
        content: Any,
        file_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Index:
        """
        Build (or fetch from cache) the index for one file's content.

        Args:
            content: Parsed file content (rows, decoded JSON, or text)
            file_type: 'csv', 'tsv', 'json', 'txt' or 'md'
            on_progress: Optional callback receiving fractions in [0, 1]

        Returns:
            The Index for ``content``

        Raises:
            NoContentError: if chunking yields no fragments
            ModelNotReadyError / EmbeddingFailedError: on a cache miss when
                the provider cannot embed
        """
        file_type = (file_type or "").lower()
        key = (content_hash(content), self.embedder.model, self._cache_slot(file_type))

        with self._lock:
            pending = self._inflight.get(key)
            if pending is None:
                future: Future = Future()
                self._inflight[key] = future

        if pending is not None:
            logger.debug("Joining in-flight build for %s", key[0][:12])
            return pending.result()

        try:
            index = self._build(key, file_type, content, on_progress)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(index)
            return index
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _cache_slot(self, file_type: str) -> str:
        """Cache namespace for a file type under the current chunking settings."""
        return f"{file_type}:d{self.config.max_depth}"

    def _cached(self, key: Tuple[str, str, str]) -> Optional[Index]:
        if self.cache is None:
            return None
        digest, model, slot = key
        cached = self.cache.get(digest, model=model, file_type=slot)
        if cached is None:
            return None
        if (self.embedder.status == ModelStatus.READY
                and cached.dimension != self.embedder.dimension):
            logger.warning("Ignoring cached index %s: dimension %d, model produces %d",
                           digest[:12], cached.dimension, self.embedder.dimension)
            return None
        return cached

    def _build(
        self,
        key: Tuple[str, str, str],
        file_type: str,
        content: Any,
        on_progress: Optional[ProgressCallback],
    ) -> Index:
        digest, _, slot = key
        cached = self._cached(key)
        if cached is not None:
            logger.info("Using cached index %s (%d entries)", digest[:12], len(cached))
            if on_progress:
                on_progress(1.0)
            return cached

        fragments = chunk_for_search(content, file_type, max_depth=self.config.max_depth)
        index = self.builder.build(fragments, on_progress)
        if self.cache is not None:
            self.cache.put(digest, index, file_type=slot)
        return index

    def build_file_index(
        self,
        path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Index:
        """Read, parse and index a file from disk."""
        loaded = load_file(path)
        return self.build_index(loaded.content, loaded.file_type, on_progress)

    def build_directory_index(
        self,
        files: Union[str, Path, Iterable[FileRef]],
        on_progress: Optional[ProgressCallback] = None,
    ) -> DirectoryIndex:
        """
        Index many files into one directory-scoped index.

        Args:
            files: A directory to scan, or FileRefs from any file source
            on_progress: Optional callback receiving processed/eligible fractions
        """
        if isinstance(files, (str, Path)):
            files = discover_files(files)
        return self.directory_indexer.index_files(files, on_progress)

    # ============ Search ============

    def search(
        self,
        index: Optional[Index],
        query: str,
        top_k: Optional[int] = None,
    ) -> List[SearchResult]:
        return self.search_engine.search(index, query, top_k)

    def search_directory(
        self,
        index: Optional[Union[Index, DirectoryIndex]],
        query: str,
        top_k: Optional[int] = None,
    ) -> List[SearchResult]:
        if isinstance(index, DirectoryIndex):
            index = index.index
        return self.search_engine.search_directory(index, query, top_k)

    def session(self, *, directory: bool = False, top_k: Optional[int] = None) -> SearchSession:
        """A latest-request-wins query session bound to this engine."""
        return SearchSession(
            self.search_engine,
            debounce=self.config.debounce_seconds,
            directory=directory,
            top_k=top_k,
        )

    # ============ Housekeeping ============

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()
        self.embedder.cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        report = self.embedder.report
        return {
            "embedding_provider": self.config.embedding_provider,
            "embedding_model": self.embedder.model,
            "embedding_dim": self.embedder.dimension,
            "model_status": report.status.value,
            "model_message": report.message,
            "cache_path": self.config.cache_path if self.cache is not None else None,
            "cached_indexes": len(self.cache) if self.cache is not None else 0,
            "query_cache": self.embedder.cache.stats(),
        }

    def close(self) -> None:
        """Close the index cache."""
        if self.cache is not None:
            self.cache.close()


def create_filelens(
    cache_path: str = "filelens-cache.db",
    *,
    embedding_provider: str = "huggingface",
    embedding_model: Optional[str] = None,
    cache_enabled: bool = True,
) -> FileLens:
    """
    Create a FileLens instance with sensible defaults.

    Example:
        >>> lens = create_filelens("~/.filelens/cache.db")
        >>> lens.load_model()
        >>> index = lens.build_file_index("people.csv")
        >>> results = lens.search(index, "who is oldest?")
    """
    config = FileLensConfig(
        cache_path=str(Path(cache_path).expanduser()),
        embedding_provider=embedding_provider,
        embedding_model=embedding_model,
        cache_enabled=cache_enabled,
    )
    return FileLens(config)
