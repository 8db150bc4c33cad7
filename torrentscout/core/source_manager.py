"""
Source Manager
Fans a query out to every selected source, collects partial results and failures
"""
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
import logging
import threading
import time

from ..models.search_result import (
    AggregateResult,
    NormalizedResult,
    SearchRequest,
    SourceId,
    SourceOutcome,
)
from ..sources.base import BaseSource
from .errors import (
    AllSourcesFailedError,
    SourceError,
    SourceTimeoutError,
    TorrentScoutError,
    UnknownSourceError,
)
from .event_bus import EventBus, Events
from .ranking import rank

logger = logging.getLogger(__name__)


class SourceManager:
    """Concurrent multi-source lookup over a fixed source mapping"""

    def __init__(
        self,
        event_bus: EventBus,
        sources: Mapping[SourceId, BaseSource],
        enabled: Optional[Iterable[SourceId]] = None,
        max_workers: int = 16,
        timeout_grace_seconds: float = 1.0,
        default_timeout_seconds: float = 20.0,
    ):
        self.event_bus = event_bus
        self._sources: Dict[SourceId, BaseSource] = {}
        for source_id, source in dict(sources).items():
            if not isinstance(source, BaseSource):
                raise TypeError(f"Invalid source type for {source_id}: {type(source)}. Expected BaseSource.")
            if not isinstance(source_id, SourceId) or source.source_id is not source_id:
                raise ValueError(f"Source {type(source).__name__} registered under mismatching id {source_id!r}.")
            self._sources[source_id] = source
        self._enabled: FrozenSet[SourceId] = frozenset(self._sources if enabled is None else enabled) & frozenset(self._sources)
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="source-search")
        self._grace = max(0.0, float(timeout_grace_seconds))
        self.default_timeout_seconds = float(default_timeout_seconds)

    def get_source_ids(self) -> List[SourceId]:
        """All registered source ids, in declaration order."""
        return [s for s in SourceId if s in self._sources]

    def get_enabled_sources(self) -> FrozenSet[SourceId]:
        return self._enabled

    def is_source_enabled(self, source_id: SourceId) -> bool:
        return source_id in self._enabled

    def get_source(self, source_id: SourceId) -> BaseSource:
        try:
            return self._sources[source_id]
        except KeyError:
            raise UnknownSourceError(f"Source {source_id!r} is not registered") from None

    def resolve_sources(self, codes: Optional[Iterable[str]] = None) -> FrozenSet[SourceId]:
        """
        Turn user-facing codes ("tpb", "arc,td") into source ids.
        No codes (or "all") selects every enabled source.
        """
        codes = [piece.strip() for c in (codes or []) for piece in str(c or "").split(",") if piece.strip()]
        if not codes or any(c.lower() == "all" for c in codes):
            return self._enabled
        selected = SourceId.parse_many(codes)
        for source_id in selected:
            self.get_source(source_id)
        return selected

    def build_request(self, query: str, codes: Optional[Iterable[str]] = None, timeout: Optional[float] = None) -> SearchRequest:
        return SearchRequest(
            query=query,
            timeout=self.default_timeout_seconds if timeout is None else timeout,
            sources=self.resolve_sources(codes),
        )

    def lookup(self, request: SearchRequest) -> AggregateResult:
        """
        Fan out, collect and rank.

        Raises AllSourcesFailedError only when every selected source failed;
        an empty but successful aggregate means "no results".
        """
        logger.debug("Launch search for %r on %s", request.query, sorted(s.value for s in request.sources))
        self.event_bus.emit(Events.SEARCH_STARTED, {
            "query": request.query,
            "sources": sorted(s.value for s in request.sources),
        })

        outcomes = self.dispatch(request)
        try:
            result = self.collect(len(request.sources), outcomes)
        finally:
            outcomes.close()

        if result.all_failed:
            logger.error("All searches broke for %r", request.query)
            self.event_bus.emit(Events.SEARCH_ERROR, {
                "query": request.query,
                "errors": {s.value: msg for s, msg in result.errors.items()},
            })
            raise AllSourcesFailedError(result)

        self.event_bus.emit(Events.SEARCH_COMPLETED, {
            "query": request.query,
            "count": len(result.merged),
            "failed_sources": sorted(s.value for s in result.failed_sources),
        })
        return result

    def search(self, query: str, codes: Optional[Iterable[str]] = None, timeout: Optional[float] = None) -> AggregateResult:
        """Convenience wrapper: build the request, then lookup()."""
        return self.lookup(self.build_request(query, codes, timeout))

    def dispatch(self, request: SearchRequest) -> Iterator[SourceOutcome]:
        """
        Start one task per selected source and yield one outcome per task.

        Outcomes arrive in completion order. Each task has its own deadline
        (request timeout plus grace); a task past its deadline yields a
        SourceTimeoutError failure, its cancel event is set so the source stops
        downloading and frees its worker, and its late result is dropped.
        """
        unknown = [s for s in request.sources if s not in self._sources]
        if unknown:
            raise UnknownSourceError(f"Source(s) not registered: {sorted(str(s) for s in unknown)}")

        futures: Dict[Future, SourceId] = {}
        deadlines: Dict[Future, float] = {}
        cancel_events: Dict[Future, threading.Event] = {}
        for source_id in sorted(request.sources, key=lambda s: s.value):
            source = self._sources[source_id]
            logger.debug("Start search task for %s", source_id.value)
            cancel_event = threading.Event()
            future = self._executor.submit(self._safe_search, source, request.query, request.timeout, cancel_event)
            futures[future] = source_id
            cancel_events[future] = cancel_event
            deadlines[future] = time.monotonic() + request.timeout + self._grace

        pending = set(futures)
        try:
            while pending:
                now = time.monotonic()
                for future in [f for f in pending if deadlines[f] <= now]:
                    pending.discard(future)
                    source_id = futures[future]
                    if future.done():
                        yield self._outcome_from_future(future, source_id)
                        continue
                    cancel_events[future].set()
                    future.cancel()
                    yield SourceOutcome.failure(source_id, SourceTimeoutError(
                        f"{source_id.display_name} timed out after {request.timeout:g}s",
                        source_id=source_id,
                    ))
                if not pending:
                    break

                next_deadline = min(deadlines[f] for f in pending)
                done, _ = wait(
                    pending,
                    timeout=max(0.0, next_deadline - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    pending.discard(future)
                    yield self._outcome_from_future(future, futures[future])
        finally:
            # Abandoned dispatch: nothing will read the remaining outcomes.
            for future in pending:
                cancel_events[future].set()
                future.cancel()

    def collect(self, num_sources: int, outcomes: Iterable[SourceOutcome]) -> AggregateResult:
        """
        Read exactly num_sources outcomes and build the ranked aggregate.

        One SOURCE_FAILED event (and one warning) fires per failed source.
        all_failed is set only when every outcome is a failure.
        """
        iterator = iter(outcomes)
        merged: List[NormalizedResult] = []
        failed = set()
        seen = set()
        errors: Dict[SourceId, str] = {}

        for index in range(num_sources):
            try:
                outcome = next(iterator)
            except StopIteration:
                raise TorrentScoutError(
                    f"outcome stream ended after {index} of {num_sources} sources"
                ) from None
            seen.add(outcome.source_id)

            if outcome.ok:
                merged.extend(outcome.results)
                logger.debug("Got %d result(s) from %s", len(outcome.results), outcome.source_id.value)
                self.event_bus.emit(Events.SOURCE_COMPLETED, {
                    "source": outcome.source_id.value,
                    "count": len(outcome.results),
                })
            else:
                message = str(outcome.error) or type(outcome.error).__name__
                failed.add(outcome.source_id)
                errors[outcome.source_id] = message
                logger.warning("The %s search task broke: %s", outcome.source_id.value, message)
                self.event_bus.emit(Events.SOURCE_FAILED, {
                    "source": outcome.source_id.value,
                    "error": message,
                })

            self.event_bus.emit(Events.SEARCH_PROGRESS, {
                "completed": index + 1,
                "total": num_sources,
                "source": outcome.source_id.value,
            })

        return AggregateResult(
            merged=tuple(rank(merged)),
            failed_sources=frozenset(failed),
            all_failed=num_sources > 0 and len(failed) == num_sources,
            errors=errors,
            requested_sources=frozenset(seen),
        )

    def _safe_search(
        self,
        source: BaseSource,
        query: str,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> SourceOutcome:
        """Run one source; every exception becomes a failure outcome."""
        source_id = source.source_id
        if cancel_event is not None and cancel_event.is_set():
            return SourceOutcome.failure(source_id, SourceTimeoutError(
                f"{source_id.display_name} was cancelled before it started",
                source_id=source_id,
            ))
        started = time.perf_counter()
        try:
            results = source.search(query, timeout, cancel_event)
        except Exception as e:
            logger.debug("Source %s raised after %.0fms: %s", source_id.value, (time.perf_counter() - started) * 1000.0, e)
            return SourceOutcome.failure(source_id, e)

        if not isinstance(results, (list, tuple)):
            return SourceOutcome.failure(source_id, SourceError(
                f"{source_id.display_name} returned {type(results).__name__} instead of a list",
                source_id=source_id,
            ))
        for result in results:
            if not isinstance(result, NormalizedResult) or result.source_id is not source_id:
                return SourceOutcome.failure(source_id, SourceError(
                    f"{source_id.display_name} returned a result it does not own",
                    source_id=source_id,
                ))
        return SourceOutcome.success(source_id, results)

    def _outcome_from_future(self, future: Future, source_id: SourceId) -> SourceOutcome:
        try:
            return future.result()
        except Exception as e:
            return SourceOutcome.failure(source_id, e)

    def shutdown(self):
        """Shutdown executor"""
        self._executor.shutdown(wait=False, cancel_futures=True)
