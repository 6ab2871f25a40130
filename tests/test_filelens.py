from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from conftest import FakeEmbedding, ready

from filelens.config import FileLensConfig
from filelens.errors import EmbeddingFailedError, NoContentError
from filelens.filelens import FileLens
from filelens.models import DirectoryIndex, FileRef, ModelStatus
from filelens.storage import IndexCache

ROWS = [["name", "age"], ["Ann", "30"], ["Bo", "41"]]


def test_second_build_is_served_from_cache(lens: FileLens, embedder: FakeEmbedding) -> None:
    first = lens.build_index(ROWS, "csv")
    calls_after_first = len(embedder.calls)
    progress = []
    second = lens.build_index([list(r) for r in ROWS], "csv", progress.append)

    assert second == first
    assert len(embedder.calls) == calls_after_first
    assert progress == [1.0]


def test_cache_survives_new_engine(embedder: FakeEmbedding, cache_path: Path) -> None:
    config = FileLensConfig(cache_path=str(cache_path))
    FileLens(config, embedder=embedder).build_index("alpha\nbeta", "txt")

    other = ready(FakeEmbedding())
    index = FileLens(config, embedder=other).build_index("alpha\nbeta", "txt")
    assert len(index) == 2
    assert other.calls == []


def test_changed_content_builds_new_index(lens: FileLens, embedder: FakeEmbedding) -> None:
    lens.build_index("alpha\nbeta", "txt")
    index = lens.build_index("alpha\ngamma", "txt")

    assert [e.text for e in index] == ["alpha", "gamma"]
    assert len(embedder.calls) == 2


def test_model_switch_never_reuses_other_model_entries(cache_path: Path) -> None:
    config = FileLensConfig(cache_path=str(cache_path))
    small = ready(FakeEmbedding(model="small", dim=8))
    FileLens(config, embedder=small).build_index(ROWS, "csv")

    large = ready(FakeEmbedding(model="large", dim=32))
    index = FileLens(config, embedder=large).build_index(ROWS, "csv")

    assert index.model == "large"
    assert index.dimension == 32
    assert len(large.calls) == 1


def test_empty_content_raises_no_content(lens: FileLens) -> None:
    with pytest.raises(NoContentError):
        lens.build_index("   ", "txt")
    with pytest.raises(NoContentError):
        lens.build_index([["header"]], "csv")


def test_cache_failure_does_not_fail_build(embedder: FakeEmbedding, tmp_path: Path) -> None:
    lens = FileLens(FileLensConfig(), embedder=embedder, cache=IndexCache(str(tmp_path)))
    index = lens.build_index(ROWS, "csv")
    assert len(index) == 2


def test_cache_disabled(embedder: FakeEmbedding) -> None:
    lens = FileLens(FileLensConfig(cache_enabled=False), embedder=embedder)
    lens.build_index(ROWS, "csv")
    lens.build_index(ROWS, "csv")

    assert lens.cache is None
    assert len(embedder.calls) == 2


def test_concurrent_builds_for_same_content_are_coalesced(embedder: FakeEmbedding) -> None:
    lens = FileLens(FileLensConfig(cache_enabled=False), embedder=embedder)
    embedder.gate = threading.Event()
    results = []

    def build() -> None:
        results.append(lens.build_index(ROWS, "csv"))

    threads = [threading.Thread(target=build) for _ in range(3)]
    for t in threads:
        t.start()
    time.sleep(0.2)
    embedder.gate.set()
    for t in threads:
        t.join(timeout=5)

    assert len(results) == 3
    assert results[0] == results[1] == results[2]
    assert len(embedder.calls) == 1
    assert lens._inflight == {}


def test_failed_build_is_not_cached(cache_path: Path) -> None:
    embedder = ready(FakeEmbedding(fail_on=["name: Bo, age: 41"]))
    lens = FileLens(FileLensConfig(cache_path=str(cache_path)), embedder=embedder)
    with pytest.raises(EmbeddingFailedError):
        lens.build_index(ROWS, "csv")

    embedder.fail_on.clear()
    index = lens.build_index(ROWS, "csv")
    assert len(index) == 2
    assert len(embedder.calls) == 2


def test_search_ranks_matching_row_first(lens: FileLens) -> None:
    index = lens.build_index(ROWS, "csv")
    results = lens.search(index, "Bo", top_k=1)

    assert len(results) == 1
    assert results[0].text == "name: Bo, age: 41"
    assert results[0].location == 2


def test_build_file_index_from_disk(lens: FileLens, tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"service": "api", "ports": [80, 443]}', encoding="utf-8")
    index = lens.build_file_index(path)

    assert [e.fragment.location for e in index] == ["root", "root.ports[0]", "root.ports[1]"]


def test_directory_index_and_search(lens: FileLens, tmp_path: Path) -> None:
    (tmp_path / "team.csv").write_text("name,skill\nAnn,python\nBo,rust\n", encoding="utf-8")
    (tmp_path / "todo.txt").write_text("buy milk\n\nfix python build", encoding="utf-8")

    result = lens.build_directory_index(tmp_path)
    assert isinstance(result, DirectoryIndex)
    assert result.file_count == 2

    hits = lens.search_directory(result, "python")
    assert len(hits) == 2
    assert len({h.file_identity for h in hits}) == 2


def test_directory_index_from_refs(lens: FileLens) -> None:
    refs = [FileRef("a.txt"), FileRef("b.txt")]
    lens.directory_indexer.fetch = lambda ref: {"a.txt": "alpha", "b.txt": ""}[ref.name]
    result = lens.build_directory_index(refs)
    assert result.file_count == 1


def test_stats_report_model_and_cache(lens: FileLens) -> None:
    lens.build_index(ROWS, "csv")
    stats = lens.get_stats()

    assert stats["embedding_model"] == "fake-model"
    assert stats["model_status"] == ModelStatus.READY.value
    assert stats["cached_indexes"] == 1

    lens.clear_cache()
    assert lens.get_stats()["cached_indexes"] == 0


def test_cache_is_separated_by_chunking_depth(cache_path: Path) -> None:
    nested = {"a": {"b": {"c": {"d": {"e": 1}}}}}
    shallow_embedder = ready(FakeEmbedding())
    shallow = FileLens(
        FileLensConfig(cache_path=str(cache_path), max_depth=1), embedder=shallow_embedder
    ).build_index(nested, "json")
    assert [e.fragment.location for e in shallow] == ["root", "root.a"]

    deep_embedder = ready(FakeEmbedding())
    deep = FileLens(
        FileLensConfig(cache_path=str(cache_path), max_depth=3), embedder=deep_embedder
    ).build_index(nested, "json")

    assert len(deep) == 4
    assert len(deep_embedder.calls) == 1


def test_model_defaults_follow_provider() -> None:
    openai_lens = FileLens(FileLensConfig(embedding_provider="openai", cache_enabled=False))
    assert openai_lens.embedder.model == "text-embedding-3-small"

    local_lens = FileLens(FileLensConfig(cache_enabled=False))
    assert local_lens.embedder.model == "all-MiniLM-L6-v2"

    custom = FileLens(FileLensConfig(embedding_model="all-mpnet-base-v2", cache_enabled=False))
    assert custom.embedder.model == "all-mpnet-base-v2"
