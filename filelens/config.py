"""Configuration models for the FileLens search engine."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class FileLensConfig:
    """Configuration for the FileLens search engine."""

    # Embedding settings
    embedding_provider: str = "huggingface"  # 'huggingface', 'openai'
    embedding_model: Optional[str] = None  # provider default when unset
    embed_batch_size: int = 32  # sub-batch size used for progress reporting

    # Chunking settings
    max_depth: int = 3           # JSON recursion cap; deeper branches are dropped
    dir_max_fragments: int = 20  # per-file cap in directory mode
    dir_slice_chars: int = 200   # JSON slice width in directory mode

    # Search settings
    default_k: int = 10
    directory_k: int = 15
    debounce_seconds: float = 0.3

    # Storage
    cache_enabled: bool = True
    cache_path: str = "filelens-cache.db"

    supported_extensions: Tuple[str, ...] = ("csv", "json", "txt", "md")
