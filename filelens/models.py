"""Data models for the FileLens search engine."""

import posixpath
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DimensionMismatchError

Location = Union[int, str]


@dataclass(frozen=True)
class Fragment:
    """A chunk of source text with a stable position label."""
    text: str
    location: Location  # row / line number, or structural path
    label: str = ""
    source_id: Optional[str] = None
    source_name: Optional[str] = None


@dataclass(frozen=True)
class IndexEntry:
    """A fragment paired with its embedding."""
    fragment: Fragment
    embedding: Tuple[float, ...]

    @property
    def text(self) -> str:
        return self.fragment.text

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class Index:
    """
    Ordered, immutable sequence of index entries built by one model.

    All embeddings share ``dimension``; construction fails otherwise. A content
    change always produces a new Index.
    """
    entries: Tuple[IndexEntry, ...]
    model: str
    dimension: int = 0

    def __post_init__(self):
        if not isinstance(self.entries, tuple):
            object.__setattr__(self, "entries", tuple(self.entries))
        if self.entries and not self.dimension:
            object.__setattr__(self, "dimension", self.entries[0].dimension)
        for entry in self.entries:
            if entry.dimension != self.dimension:
                raise DimensionMismatchError(self.dimension, entry.dimension)

    @classmethod
    def from_vectors(
        cls,
        fragments: Sequence[Fragment],
        vectors: Sequence[Sequence[float]],
        model: str,
    ) -> "Index":
        """Pair fragments with vectors, normalizing values to float32."""
        if len(fragments) != len(vectors):
            raise ValueError(
                f"Got {len(vectors)} embeddings for {len(fragments)} fragments"
            )
        dimension = len(vectors[0]) if len(vectors) else 0
        entries = []
        for fragment, vector in zip(fragments, vectors):
            if len(vector) != dimension:
                raise DimensionMismatchError(dimension, len(vector))
            values = np.asarray(vector, dtype=np.float32)
            entries.append(IndexEntry(fragment, tuple(values.tolist())))
        return cls(tuple(entries), model=model, dimension=dimension)

    @classmethod
    def empty(cls, model: str) -> "Index":
        return cls((), model=model, dimension=0)

    @cached_property
    def matrix(self) -> np.ndarray:
        """Embeddings as a (len, dimension) float32 matrix."""
        if not self.entries:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return np.asarray([e.embedding for e in self.entries], dtype=np.float32)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)


@dataclass(frozen=True)
class DirectoryIndex:
    """Index spanning several files, with the number of files that contributed."""
    index: Index
    file_count: int


@dataclass
class SearchResult:
    """A single ranked search hit."""
    entry: IndexEntry
    score: float  # cosine similarity in [-1, 1]
    position: int  # entry position within the searched index

    @property
    def fragment(self) -> Fragment:
        return self.entry.fragment

    @property
    def embedding(self) -> Tuple[float, ...]:
        return self.entry.embedding

    @property
    def text(self) -> str:
        return self.fragment.text

    @property
    def location(self) -> Location:
        return self.fragment.location

    @property
    def label(self) -> str:
        return self.fragment.label

    @property
    def file_identity(self) -> Optional[str]:
        return self.fragment.source_id

    @property
    def file_name(self) -> Optional[str]:
        return self.fragment.source_name


@dataclass(frozen=True)
class CacheRecord:
    """A stored index keyed by the hash of the content that produced it."""
    content_hash: str
    model: str
    file_type: str
    index: Index
    created_at: float


class ModelStatus(str, Enum):
    """Lifecycle states of an embedding provider."""
    IDLE = "idle"
    CHECKING = "checking"
    UNAVAILABLE = "unavailable"
    NEEDS_DOWNLOAD = "needs-download"
    NEEDS_LOAD = "needs-load"
    DOWNLOADING = "downloading"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class StatusReport:
    """Provider status with a human-readable message."""
    status: ModelStatus
    message: str = ""
    progress: Optional[float] = None  # only while downloading / loading


@dataclass(frozen=True)
class FileRef:
    """A file handed to the directory indexer."""
    name: str
    path: Optional[Path] = None
    url: Optional[str] = None
    kind: str = "file"  # 'file' or 'directory'

    @property
    def identity(self) -> str:
        if self.path is not None:
            return str(self.path)
        return self.url or self.name

    @property
    def extension(self) -> str:
        _, ext = posixpath.splitext(self.name)
        return ext.lstrip(".").lower()
