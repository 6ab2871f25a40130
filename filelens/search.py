"""Cosine-similarity ranking over in-memory indexes."""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .embeddings import BaseEmbeddingProvider
from .errors import DimensionMismatchError, NoIndexError
from .models import Index, SearchResult

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between ``a`` and ``b``, in [-1, 1].

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.size, vb.size)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def score_index(index: Index, query_vector: Sequence[float]) -> np.ndarray:
    """Cosine similarity of ``query_vector`` against every entry of ``index``."""
    query = np.asarray(query_vector, dtype=np.float64)
    if query.size != index.dimension:
        raise DimensionMismatchError(index.dimension, query.size)

    matrix = index.matrix.astype(np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
    return np.clip(scores, -1.0, 1.0)


def rank(index: Index, scores: np.ndarray) -> List[SearchResult]:
    """All entries by descending score; equal scores keep index order."""
    order = np.argsort(-scores, kind="stable")
    return [
        SearchResult(entry=index.entries[i], score=float(scores[i]), position=int(i))
        for i in order
    ]


class SearchEngine:
    """Embeds queries and ranks index entries by cosine similarity."""

    def __init__(
        self,
        embedder: BaseEmbeddingProvider,
        default_k: int = 10,
        directory_k: int = 15,
    ):
        self.embedder = embedder
        self.default_k = default_k
        self.directory_k = directory_k

    def _ranked(self, index: Optional[Index], query: str) -> List[SearchResult]:
        if index is None or len(index) == 0:
            raise NoIndexError()
        query_vector = self.embedder.embed(query)
        logger.debug("Scoring %d entries for query %r", len(index), query)
        return rank(index, score_index(index, query_vector))

    def search(
        self,
        index: Optional[Index],
        query: str,
        top_k: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Rank the fragments of a single-file index against ``query``.

        Raises:
            NoIndexError: if the index is missing or empty
            ModelNotReadyError / EmbeddingFailedError: from the provider
            DimensionMismatchError: if the index was built by another model
        """
        k = self.default_k if top_k is None else top_k
        return self._ranked(index, query)[:max(0, k)]

    def search_directory(
        self,
        index: Optional[Index],
        query: str,
        top_k: Optional[int] = None,
    ) -> List[SearchResult]:
        """Rank a directory index, keeping only the best fragment per file."""
        k = self.directory_k if top_k is None else top_k
        if k <= 0:
            return []

        seen = set()
        results = []
        for result in self._ranked(index, query):
            identity = result.file_identity
            if identity in seen:
                continue
            seen.add(identity)
            results.append(result)
            if len(results) >= k:
                break
        return results
