from __future__ import annotations

import logging
import threading
import time
from typing import List

import pytest
from conftest import FakeEmbedding

from filelens.filelens import FileLens
from filelens.models import FileRef
from filelens.session import SearchOutcome, SearchStatus

ROWS = [["name", "age"], ["Ann", "30"], ["Bo", "41"]]


def test_search_now_reports_results(lens: FileLens) -> None:
    session = lens.session()
    session.publish(lens.build_index(ROWS, "csv"))
    outcome = session.search_now("Bo")

    assert outcome is not None
    assert outcome.status == SearchStatus.RESULTS
    assert outcome.results[0].text == "name: Bo, age: 41"
    assert outcome.message == "2 results"


def test_status_without_index(lens: FileLens) -> None:
    session = lens.session()
    assert session.search_now("anything").status == SearchStatus.NO_INDEX

    session.mark_building()
    assert session.search_now("anything").status == SearchStatus.BUILDING

    session.publish(lens.build_index(ROWS, "csv"))
    assert session.search_now("Ann").status == SearchStatus.RESULTS


def test_model_required_after_unload(lens: FileLens, embedder: FakeEmbedding) -> None:
    session = lens.session()
    session.publish(lens.build_index(ROWS, "csv"))
    embedder.unload()

    outcome = session.search_now("Bo")
    assert outcome.status == SearchStatus.MODEL_REQUIRED
    assert outcome.results == []


def test_no_results_status(lens: FileLens) -> None:
    session = lens.session(top_k=0)
    session.publish(lens.build_index(ROWS, "csv"))
    outcome = session.search_now("Bo")

    assert outcome.status == SearchStatus.NO_RESULTS
    assert outcome.message == "No matches found"


def test_superseded_query_is_discarded(lens: FileLens, embedder: FakeEmbedding) -> None:
    session = lens.session()
    session.publish(lens.build_index(ROWS, "csv"))
    embedder.before_embed = lambda texts: session.cancel()

    assert session.search_now("Ann") is None


def test_only_latest_submitted_query_is_delivered(lens: FileLens) -> None:
    session = lens.session()
    session.publish(lens.build_index(ROWS, "csv"))
    delivered: List[SearchOutcome] = []
    done = threading.Event()

    def callback(outcome: SearchOutcome) -> None:
        delivered.append(outcome)
        done.set()

    first = session.submit("Ann", callback)
    second = session.submit("Bo", callback)

    assert second > first
    assert done.wait(timeout=5)
    time.sleep(0.15)
    assert [o.query for o in delivered] == ["Bo"]
    assert delivered[0].token == second


def test_cancel_drops_pending_query(lens: FileLens) -> None:
    session = lens.session()
    session.publish(lens.build_index(ROWS, "csv"))
    delivered: List[SearchOutcome] = []

    session.submit("Ann", delivered.append)
    session.cancel()
    time.sleep(0.15)
    assert delivered == []


def test_directory_session_dedupes_files(lens: FileLens) -> None:
    lens.directory_indexer.fetch = lambda ref: {
        "a.txt": "python tips\n\nmore python",
        "b.txt": "python notes",
    }[ref.name]

    result = lens.build_directory_index([FileRef("a.txt"), FileRef("b.txt")])
    session = lens.session(directory=True)
    session.publish(result.index)
    outcome = session.search_now("python")

    assert [r.file_name for r in outcome.results] == ["a.txt", "b.txt"]


def test_messages_are_distinct() -> None:
    messages = {
        SearchOutcome("q", 1, status).message for status in SearchStatus
    }
    assert len(messages) == len(SearchStatus)


def test_callback_failure_is_logged(lens: FileLens, caplog: pytest.LogCaptureFixture) -> None:
    session = lens.session()
    session.publish(lens.build_index(ROWS, "csv"))
    called = threading.Event()

    def callback(outcome: SearchOutcome) -> None:
        called.set()
        raise RuntimeError("display went away")

    with caplog.at_level(logging.ERROR, logger="filelens.session"):
        session.submit("Bo", callback)
        assert called.wait(timeout=5)
        deadline = time.monotonic() + 5
        while not caplog.records and time.monotonic() < deadline:
            time.sleep(0.01)

    assert any(r.exc_info and "display went away" in str(r.exc_info[1]) for r in caplog.records)
