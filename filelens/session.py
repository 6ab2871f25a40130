"""Interactive query handling where only the latest request is delivered."""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .errors import FileLensError, ModelNotReadyError, ModelUnavailableError, NoIndexError
from .models import Index, SearchResult
from .search import SearchEngine

logger = logging.getLogger(__name__)


class SearchStatus(str, Enum):
    RESULTS = "results"
    NO_RESULTS = "no-results"
    BUILDING = "building"
    NO_INDEX = "no-index"
    MODEL_REQUIRED = "model-required"
    FAILED = "failed"


STATUS_TEXT = {
    SearchStatus.RESULTS: "{count} results",
    SearchStatus.NO_RESULTS: "No matches found",
    SearchStatus.BUILDING: "Building search index...",
    SearchStatus.NO_INDEX: "No search index available",
    SearchStatus.MODEL_REQUIRED: "Download or load the embedding model to enable semantic search",
    SearchStatus.FAILED: "Search failed: {error}",
}


@dataclass
class SearchOutcome:
    """What a query produced, in a form a UI can display directly."""
    query: str
    token: int
    status: SearchStatus
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def message(self) -> str:
        return STATUS_TEXT[self.status].format(count=len(self.results), error=self.error)


class SearchSession:
    """
    Holds the current index and runs queries with latest-request-wins semantics.

    Every submitted query gets a token from a monotonically increasing
    counter. A query is only delivered if its token is still the newest when
    it completes; older completions are dropped. ``submit`` additionally
    waits ``debounce`` seconds of quiet before searching.
    """

    def __init__(
        self,
        engine: SearchEngine,
        *,
        debounce: float = 0.3,
        directory: bool = False,
        top_k: Optional[int] = None,
    ):
        self.engine = engine
        self.debounce = debounce
        self.directory = directory
        self.top_k = top_k
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._current = 0
        self._index: Optional[Index] = None
        self._building = False
        self._timer: Optional[threading.Timer] = None

    @property
    def index(self) -> Optional[Index]:
        return self._index

    def publish(self, index: Optional[Index]) -> None:
        """Replace the held index in one step."""
        with self._lock:
            self._index = index
            self._building = False

    def mark_building(self) -> None:
        with self._lock:
            self._building = True

    def _next_token(self) -> int:
        with self._lock:
            self._current = next(self._counter)
            return self._current

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._current

    def _run(self, query: str, token: int) -> SearchOutcome:
        with self._lock:
            index, building = self._index, self._building

        if not index:
            status = SearchStatus.BUILDING if building else SearchStatus.NO_INDEX
            return SearchOutcome(query, token, status)
        try:
            if self.directory:
                results = self.engine.search_directory(index, query, self.top_k)
            else:
                results = self.engine.search(index, query, self.top_k)
        except (ModelNotReadyError, ModelUnavailableError) as exc:
            return SearchOutcome(query, token, SearchStatus.MODEL_REQUIRED, error=str(exc))
        except NoIndexError:
            return SearchOutcome(query, token, SearchStatus.NO_INDEX)
        except FileLensError as exc:
            logger.warning("Search for %r failed: %s", query, exc)
            return SearchOutcome(query, token, SearchStatus.FAILED, error=str(exc))

        status = SearchStatus.RESULTS if results else SearchStatus.NO_RESULTS
        return SearchOutcome(query, token, status, results=results)

    def search_now(self, query: str) -> Optional[SearchOutcome]:
        """Search synchronously; returns None if a newer query superseded this one."""
        token = self._next_token()
        outcome = self._run(query, token)
        if not self.is_current(token):
            logger.debug("Discarding stale results for %r (token %d)", query, token)
            return None
        return outcome

    def submit(self, query: str, callback: Callable[[SearchOutcome], None]) -> int:
        """
        Schedule a debounced search and return its token.

        ``callback`` runs on a timer thread, and only if no newer query was
        submitted in the meantime.
        """
        token = self._next_token()

        def fire() -> None:
            if not self.is_current(token):
                return
            try:
                outcome = self._run(query, token)
                if self.is_current(token):
                    callback(outcome)
                else:
                    logger.debug("Discarding stale results for %r (token %d)", query, token)
            except Exception:
                logger.exception("Delivering results for %r (token %d) failed", query, token)

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, fire)
            self._timer.daemon = True
            self._timer.start()
        return token

    def cancel(self) -> None:
        """Invalidate any pending or running query."""
        self._next_token()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
