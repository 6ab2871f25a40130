"""Index construction from chunked fragments."""

import logging
from typing import Callable, Optional, Sequence

from .embeddings import BaseEmbeddingProvider
from .errors import NoContentError
from .models import Fragment, Index

logger = logging.getLogger(__name__)


class IndexBuilder:
    """Embeds fragments in one batch and produces an immutable Index."""

    def __init__(self, embedder: BaseEmbeddingProvider):
        self.embedder = embedder

    def build(
        self,
        fragments: Sequence[Fragment],
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Index:
        """
        Build an index for ``fragments``.

        The build is all-or-nothing: if the provider fails part way through,
        the error propagates and no index is returned.

        Raises:
            NoContentError: if there are no fragments
            ModelNotReadyError: if the provider is not loaded
            EmbeddingFailedError: if the provider fails
        """
        if not fragments:
            raise NoContentError()

        texts = [fragment.text for fragment in fragments]
        vectors = self.embedder.embed_batch(texts, on_progress=on_progress)
        index = Index.from_vectors(fragments, vectors, model=self.embedder.model)
        logger.debug("Built index of %d entries (dim=%d)", len(index), index.dimension)
        return index
