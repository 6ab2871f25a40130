from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import pytest

from filelens.config import FileLensConfig
from filelens.embeddings import BaseEmbeddingProvider
from filelens.filelens import FileLens
from filelens.models import ModelStatus, StatusReport
from filelens.storage import IndexCache


class FakeEmbedding(BaseEmbeddingProvider):
    """Deterministic bag-of-words provider for tests.

    Each new token gets the next free dimension, so texts sharing words have
    positive similarity and unrelated texts are orthogonal.
    """

    def __init__(
        self,
        model: str = "fake-model",
        dim: int = 64,
        *,
        availability: ModelStatus = ModelStatus.NEEDS_LOAD,
        overrides: Optional[Dict[str, Sequence[float]]] = None,
        fail_on: Sequence[str] = (),
        fail_load: bool = False,
        batch_size: int = 32,
        use_cache: bool = True,
    ) -> None:
        super().__init__(model, use_cache=use_cache, batch_size=batch_size)
        self.dim = dim
        self.availability = availability
        self.overrides = dict(overrides or {})
        self.fail_on = set(fail_on)
        self.fail_load = fail_load
        self.vocab: Dict[str, int] = {}
        self.calls: List[List[str]] = []
        self.gate: Optional[threading.Event] = None
        self.before_embed: Optional[Callable[[List[str]], None]] = None
        self._lock_calls = threading.Lock()

    def _probe(self) -> StatusReport:
        return StatusReport(self.availability, f"fake {self.availability.value}")

    def _load_model(self, on_progress) -> None:
        if self.fail_load:
            raise RuntimeError("weights corrupted")
        if on_progress:
            on_progress(0.5)

    @property
    def dimension(self) -> int:
        return self.dim

    def vector(self, text: str) -> List[float]:
        if text in self.overrides:
            return list(self.overrides[text])
        values = [0.0] * self.dim
        for token in re.findall(r"\w+", text.lower()):
            slot = self.vocab.setdefault(token, len(self.vocab) % self.dim)
            values[slot] += 1.0
        return values

    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        with self._lock_calls:
            self.calls.append(list(texts))
        if self.before_embed:
            self.before_embed(texts)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        for text in texts:
            if text in self.fail_on:
                raise RuntimeError(f"cannot embed {text!r}")
        return [self.vector(t) for t in texts]


def ready(embedder: FakeEmbedding) -> FakeEmbedding:
    embedder.load()
    return embedder


@pytest.fixture
def embedder() -> FakeEmbedding:
    return ready(FakeEmbedding())


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "indexes.db"


@pytest.fixture
def lens(embedder: FakeEmbedding, cache_path: Path) -> Iterator[FileLens]:
    config = FileLensConfig(cache_path=str(cache_path), debounce_seconds=0.05)
    engine = FileLens(config, embedder=embedder, cache=IndexCache(str(cache_path)))
    yield engine
    engine.close()
