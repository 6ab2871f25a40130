"""Embedding providers with an explicit model lifecycle."""

import hashlib
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from tenacity import retry, stop_after_attempt, wait_exponential
from tqdm import tqdm

from .errors import EmbeddingFailedError, ModelNotReadyError, ModelUnavailableError
from .models import ModelStatus, StatusReport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Fraction of load progress reported while weights download; loading takes the rest.
DOWNLOAD_SHARE = 0.9


class EmbeddingCache:
    """LRU cache for query embeddings, owned by one provider."""

    def __init__(self, maxsize: int = 1000):
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self._maxsize = maxsize
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _hash_text(self, text: str, model: str) -> str:
        """Create a hash key for text + model combination."""
        return hashlib.sha256(f"{model}:{text}".encode()).hexdigest()[:16]

    def get(self, text: str, model: str) -> Optional[List[float]]:
        key = self._hash_text(text, model)
        with self._lock:
            if key in self._cache:
                self._hits += 1
                self._cache.move_to_end(key)
                return self._cache[key]
            self._misses += 1
            return None

    def set(self, text: str, model: str, embedding: List[float]) -> None:
        key = self._hash_text(text, model)
        with self._lock:
            self._cache[key] = embedding
            self._cache.move_to_end(key)
            while len(self._cache) > self._maxsize:
                self._cache.popitem(last=False)

    def stats(self) -> Dict[str, float]:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0,
                "size": len(self._cache),
                "maxsize": self._maxsize,
            }

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0


class BaseEmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    Subclasses implement availability probing, model loading and the raw
    batch call. The base class owns the status state machine
    (idle -> checking -> needs-download/needs-load -> downloading/loading ->
    ready, or unavailable/error) and refuses to embed unless ready.
    """

    def __init__(self, model: str, use_cache: bool = True, batch_size: int = 32):
        self.model = model
        self.use_cache = use_cache
        self.batch_size = max(1, batch_size)
        self.cache = EmbeddingCache()
        self._lock = threading.RLock()
        self._report = StatusReport(ModelStatus.IDLE, "Not checked")

    @abstractmethod
    def _probe(self) -> StatusReport:
        """Inspect the environment and report whether the model can be loaded."""

    @abstractmethod
    def _load_model(self, on_progress: Optional[ProgressCallback]) -> None:
        """Make the model usable (provider-specific)."""

    @abstractmethod
    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a batch of texts (provider-specific)."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return embedding dimension for this model."""

    @property
    def status(self) -> ModelStatus:
        return self._report.status

    @property
    def report(self) -> StatusReport:
        return self._report

    def _set_status(
        self,
        status: ModelStatus,
        message: str = "",
        progress: Optional[float] = None,
    ) -> None:
        with self._lock:
            if status != self._report.status:
                logger.debug("Embedding model %s: %s -> %s", self.model,
                             self._report.status.value, status.value)
            self._report = StatusReport(status, message, progress)

    def check_availability(self) -> StatusReport:
        """Probe the model and move to the resulting status."""
        with self._lock:
            if self.status == ModelStatus.READY:
                return self._report
            self._set_status(ModelStatus.CHECKING, "Checking model availability")
            try:
                report = self._probe()
            except Exception as exc:
                logger.warning("Availability check for %s failed: %s", self.model, exc)
                report = StatusReport(ModelStatus.ERROR, str(exc) or "Availability check failed")
            self._set_status(report.status, report.message, report.progress)
            return self._report

    def load(self, on_progress: Optional[ProgressCallback] = None) -> None:
        """
        Load the model, reporting progress fractions in [0, 1].

        Raises:
            ModelUnavailableError: if the model cannot be used or fails to load
        """
        with self._lock:
            if self.status == ModelStatus.READY:
                return
            if self.status in (ModelStatus.IDLE, ModelStatus.ERROR):
                self.check_availability()
            if self.status == ModelStatus.UNAVAILABLE:
                raise ModelUnavailableError(self._report.message)

            phase = (ModelStatus.DOWNLOADING if self.status == ModelStatus.NEEDS_DOWNLOAD
                     else ModelStatus.LOADING)
            self._set_status(phase, f"{phase.value.capitalize()} {self.model}", 0.0)

            def forward(fraction: float) -> None:
                fraction = min(1.0, max(0.0, fraction))
                self._set_status(phase, self._report.message, fraction)
                if on_progress:
                    on_progress(fraction)

            try:
                self._load_model(forward)
            except Exception as exc:
                self._set_status(ModelStatus.ERROR, str(exc) or "Failed to load embedding model")
                raise ModelUnavailableError(
                    f"Failed to load embedding model {self.model}: {exc}"
                ) from exc

            forward(1.0)
            self._set_status(ModelStatus.READY, "Available")
            logger.info("Embedding model %s ready (dim=%d)", self.model, self.dimension)

    def unload(self) -> None:
        """Release the model and return to idle."""
        with self._lock:
            self._release()
            self.cache.clear()
            self._set_status(ModelStatus.IDLE, "Not checked")

    def _release(self) -> None:
        """Drop provider-held model resources."""

    def _require_ready(self) -> None:
        if self.status != ModelStatus.READY:
            raise ModelNotReadyError(self.status.value)

    def embed(self, text: str) -> List[float]:
        """Embed one text (typically a query), using the memo cache."""
        self._require_ready()
        if self.use_cache:
            cached = self.cache.get(text, self.model)
            if cached is not None:
                return cached
        try:
            embedding = self._embed_batch([text])[0]
        except Exception as exc:
            raise EmbeddingFailedError(str(exc) or "Embedding failed") from exc
        if self.use_cache:
            self.cache.set(text, self.model, embedding)
        return embedding

    def embed_batch(
        self,
        texts: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[List[float]]:
        """
        Embed many texts in order.

        Texts are sent in sub-batches of ``batch_size`` so progress can be
        reported; any failure fails the whole call.
        """
        self._require_ready()
        texts = list(texts)
        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            try:
                embeddings.extend(self._embed_batch(batch))
            except Exception as exc:
                raise EmbeddingFailedError(str(exc) or "Batch embedding failed") from exc
            if on_progress:
                on_progress(min(len(embeddings), len(texts)) / len(texts))
        if len(embeddings) != len(texts):
            raise EmbeddingFailedError(
                f"Provider returned {len(embeddings)} embeddings for {len(texts)} texts"
            )
        return embeddings


class HuggingFaceEmbedding(BaseEmbeddingProvider):
    """
    Local sentence-transformers embedding provider.

    Requires: pip install 'filelens[local]'

    The model runs on this machine. Weights are fetched from the Hugging Face
    Hub on first load and reused from the local cache afterwards. Set HF_TOKEN
    for private models.

    Example:
        >>> embedder = HuggingFaceEmbedding("all-MiniLM-L6-v2")
        >>> embedder.load()
        >>> vector = embedder.embed("Hello world")
    """

    # Known dimensions for common models
    MODEL_DIMENSIONS = {
        "all-MiniLM-L6-v2": 384,
        "all-MiniLM-L12-v2": 384,
        "all-mpnet-base-v2": 768,
        "paraphrase-MiniLM-L6-v2": 384,
        "BAAI/bge-small-en-v1.5": 384,
        "BAAI/bge-base-en-v1.5": 768,
    }

    def __init__(
        self,
        model: str = "all-MiniLM-L6-v2",
        hf_token: Optional[str] = None,
        use_cache: bool = True,
        batch_size: int = 32,
    ):
        super().__init__(model, use_cache, batch_size)
        self.hf_token = hf_token or os.environ.get("HF_TOKEN")
        self._model = None
        self._dimension: Optional[int] = None

    @property
    def repo_id(self) -> str:
        if "/" in self.model:
            return self.model
        return f"sentence-transformers/{self.model}"

    def _is_cached(self) -> bool:
        if Path(self.model).is_dir():
            return True
        from huggingface_hub import try_to_load_from_cache

        return isinstance(try_to_load_from_cache(self.repo_id, "config.json"), str)

    def _probe(self) -> StatusReport:
        if self._model is not None:
            return StatusReport(ModelStatus.READY, "Available")
        try:
            import sentence_transformers  # noqa: F401
        except ImportError:
            return StatusReport(
                ModelStatus.UNAVAILABLE,
                "sentence-transformers not installed. Run: pip install 'filelens[local]'",
            )
        if self._is_cached():
            return StatusReport(ModelStatus.NEEDS_LOAD, "Model cached - ready to load")
        return StatusReport(ModelStatus.NEEDS_DOWNLOAD, "Model needs to be downloaded")

    def _download(self, on_progress: Optional[ProgressCallback]) -> str:
        """Fetch the model snapshot, forwarding per-file progress."""
        from huggingface_hub import snapshot_download

        class _ProgressBar(tqdm):
            def update(self, n=1):
                displayed = super().update(n)
                if on_progress and self.total:
                    on_progress(DOWNLOAD_SHARE * min(1.0, self.n / self.total))
                return displayed

        logger.info("Downloading %s from the Hugging Face Hub", self.repo_id)
        return snapshot_download(self.repo_id, token=self.hf_token, tqdm_class=_ProgressBar)

    def _load_model(self, on_progress: Optional[ProgressCallback]) -> None:
        from sentence_transformers import SentenceTransformer

        source = self.model
        if self.status == ModelStatus.DOWNLOADING:
            source = self._download(on_progress)
        self._model = SentenceTransformer(source, token=self.hf_token)
        self._dimension = self._model.get_sentence_embedding_dimension()

    def _release(self) -> None:
        self._model = None

    @property
    def dimension(self) -> int:
        if self._dimension is not None:
            return self._dimension
        return self.MODEL_DIMENSIONS.get(self.model, 384)

    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings using sentence-transformers."""
        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return embeddings.tolist()


class OpenAIEmbedding(BaseEmbeddingProvider):
    """OpenAI embedding provider with retries."""

    # Known dimensions for OpenAI models
    MODEL_DIMENSIONS = {
        "text-embedding-3-large": 3072,
        "text-embedding-3-small": 1536,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        openai_api_key: Optional[str] = None,
        use_cache: bool = True,
        batch_size: int = 256,
    ):
        super().__init__(model, use_cache, batch_size)
        self.api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
        self.client = None

    def _probe(self) -> StatusReport:
        if self.client is not None:
            return StatusReport(ModelStatus.READY, "Available")
        if not self.api_key:
            return StatusReport(
                ModelStatus.UNAVAILABLE,
                "OpenAI API key required. Set OPENAI_API_KEY environment variable.",
            )
        return StatusReport(ModelStatus.NEEDS_LOAD, "API key configured - ready to connect")

    def _load_model(self, on_progress: Optional[ProgressCallback]) -> None:
        from openai import OpenAI

        self.client = OpenAI(api_key=self.api_key)

    def _release(self) -> None:
        self.client = None

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self.model, 1536)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings via OpenAI API."""
        response = self.client.embeddings.create(
            model=self.model,
            input=texts,
        )

        # Sort by index to ensure correct order
        embeddings = sorted(response.data, key=lambda x: x.index)
        return [emb.embedding for emb in embeddings]


# ============ Provider Factory ============

def create_embedding_provider(
    provider: str = "huggingface",
    model: Optional[str] = None,
    **kwargs
) -> BaseEmbeddingProvider:
    """
    Factory function to create embedding providers.

    Args:
        provider: Provider name ('huggingface', 'openai')
        model: Model name (uses provider default if not specified)
        **kwargs: Additional provider-specific arguments

    Example:
        >>> embedder = create_embedding_provider("huggingface", "all-MiniLM-L6-v2")
        >>> embedder = create_embedding_provider("openai", "text-embedding-3-small")
    """
    provider = provider.lower()

    if provider in ("huggingface", "hf", "sentence-transformers", "local"):
        return HuggingFaceEmbedding(model or "all-MiniLM-L6-v2", **kwargs)

    elif provider in ("openai", "openai-embedding"):
        return OpenAIEmbedding(model or "text-embedding-3-small", **kwargs)

    else:
        raise ValueError(
            f"Unknown provider: {provider}. "
            f"Supported: 'huggingface', 'openai'"
        )
