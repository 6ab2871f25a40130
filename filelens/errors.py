"""Exception types raised by FileLens."""


class FileLensError(Exception):
    """Base class for all FileLens errors."""


class NoContentError(FileLensError):
    """Chunking produced no fragments to index."""

    def __init__(self, message: str = "No content to index"):
        super().__init__(message)


class ModelUnavailableError(FileLensError):
    """The embedding model cannot be used on this machine, or failed to load."""


class ModelNotReadyError(FileLensError):
    """An embedding call was made before the model reached the ready state."""

    def __init__(self, status: str, message: str = ""):
        self.status = status
        super().__init__(message or f"Embedding model not ready (status: {status})")


class EmbeddingFailedError(FileLensError):
    """The provider raised while embedding text."""


class NoIndexError(FileLensError):
    """A search was attempted without a usable index."""

    def __init__(self, message: str = "No search index available"):
        super().__init__(message)


class DimensionMismatchError(FileLensError):
    """Vectors of different dimensionality were mixed or compared."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")


class StorageError(FileLensError):
    """The index cache could not be read or written. Never surfaced to callers."""
