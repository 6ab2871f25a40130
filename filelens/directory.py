"""Directory-wide indexing across many files."""

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from .chunking import chunk_file_preview
from .embeddings import BaseEmbeddingProvider
from .errors import EmbeddingFailedError, ModelNotReadyError
from .loaders import fetch_file
from .models import DirectoryIndex, FileRef, Fragment, Index, ModelStatus

logger = logging.getLogger(__name__)

FetchFn = Callable[[FileRef], Optional[str]]


class DirectoryIndexer:
    """Builds one index over a set of files, tagging entries with their file."""

    def __init__(
        self,
        embedder: BaseEmbeddingProvider,
        fetch: FetchFn = fetch_file,
        *,
        max_fragments: int = 20,
        slice_chars: int = 200,
        extensions: Sequence[str] = ("csv", "json", "txt", "md"),
    ):
        self.embedder = embedder
        self.fetch = fetch
        self.max_fragments = max_fragments
        self.slice_chars = slice_chars
        self.extensions = tuple(ext.lower() for ext in extensions)

    def is_supported(self, ref: FileRef) -> bool:
        return ref.kind == "file" and ref.extension in self.extensions

    def _fragments_for(self, ref: FileRef) -> List[Fragment]:
        try:
            text = self.fetch(ref)
        except Exception as exc:
            logger.warning("Skipping %s: could not read file (%s)", ref.name, exc)
            return []
        if not text:
            logger.info("Skipping %s: no content", ref.name)
            return []

        previews = chunk_file_preview(
            text,
            ref.extension,
            max_fragments=self.max_fragments,
            slice_chars=self.slice_chars,
        )
        return [
            Fragment(
                text=f.text,
                location=f.location,
                label=f.label,
                source_id=ref.identity,
                source_name=ref.name,
            )
            for f in previews
        ]

    def index_files(
        self,
        files: Iterable[FileRef],
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> DirectoryIndex:
        """
        Index every supported file in ``files``, one file at a time.

        Unreadable files and files whose embedding fails are logged and
        skipped; they do not abort the scan. Progress is reported as
        processed / eligible after each file.

        Raises:
            ModelNotReadyError: if the provider is not loaded
        """
        eligible = [ref for ref in files if self.is_supported(ref)]
        if not eligible:
            return DirectoryIndex(Index.empty(self.embedder.model), file_count=0)
        if self.embedder.status != ModelStatus.READY:
            raise ModelNotReadyError(self.embedder.status.value)

        fragments: List[Fragment] = []
        vectors: List[List[float]] = []
        file_count = 0

        for processed, ref in enumerate(eligible, start=1):
            file_fragments = self._fragments_for(ref)
            if file_fragments:
                try:
                    file_vectors = self.embedder.embed_batch([f.text for f in file_fragments])
                except EmbeddingFailedError as exc:
                    logger.warning("Skipping %s: embedding failed (%s)", ref.name, exc)
                else:
                    fragments.extend(file_fragments)
                    vectors.extend(file_vectors)
                    file_count += 1

            if on_progress:
                on_progress(processed / len(eligible))

        logger.info("Indexed %d fragments from %d of %d files",
                    len(fragments), file_count, len(eligible))
        index = Index.from_vectors(fragments, vectors, model=self.embedder.model)
        return DirectoryIndex(index=index, file_count=file_count)
