"""
Mirror Racer
Races parallel probes against candidate mirrors and keeps the first usable page
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging
import queue
import threading
import time

from ..models.search_result import MirrorCandidate
from ..sources.http import fetch_page, new_session
from .errors import NoUsableMirrorError
from .event_bus import EventBus, Events

logger = logging.getLogger(__name__)

FetchFn = Callable[[str, float, threading.Event], str]
ValidateFn = Callable[[str], bool]

_POLL_SECONDS = 0.1


def default_fetch(url: str, timeout: float, cancel_event: threading.Event) -> str:
    """Fetch a probe URL with a fresh session, aborting once the race is won."""
    session = new_session()
    try:
        return fetch_page(session, url, timeout, cancel_event=cancel_event)
    finally:
        session.close()


@dataclass
class RaceReport:
    """Bookkeeping for one race; every launched probe ends in exactly one bucket."""
    launched: int = 0
    accepted: int = 0
    rejected: int = 0
    cancelled: int = 0   # stopped by the cancel token before doing network work or mid-download
    discarded: int = 0   # finished with a usable page after the winner was picked
    winner: str = ""
    reasons: Dict[str, str] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def settled(self) -> int:
        with self._lock:
            return self.accepted + self.rejected + self.cancelled + self.discarded

    @property
    def in_flight(self) -> int:
        return self.launched - self.settled


class MirrorRacer:
    """
    First-accepted-wins race over mirror candidates.

    A probe is accepted when fetch() returns and validate() approves the body.
    Transport errors, non-2xx answers and bodies failing validate() count as
    rejections. Once a winner exists the shared cancel token is set: probes
    that have not started never touch the network and in-flight ones stop at
    the next chunk. Probe results go through an unbounded queue so a late
    probe never blocks.
    """

    def __init__(
        self,
        validate: ValidateFn,
        fetch: Optional[FetchFn] = None,
        grace_seconds: float = 1.0,
        event_bus: Optional[EventBus] = None,
    ):
        self.validate = validate
        self.fetch = fetch or default_fetch
        self.grace_seconds = max(0.0, float(grace_seconds))
        self.event_bus = event_bus
        self.last_report: Optional[RaceReport] = None

    def race(
        self,
        candidates: List[MirrorCandidate],
        build_query_url: Callable[[MirrorCandidate], str],
        timeout: float,
        report: Optional[RaceReport] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Return the body of the first accepted probe.

        Raises NoUsableMirrorError when the candidate list is empty, when every
        probe is rejected, or when no probe is accepted within timeout plus
        the grace period. Setting cancel_event ends the race early the same
        way, with every probe told to stop.
        """
        report = report if report is not None else RaceReport()
        self.last_report = report

        if not candidates:
            logger.debug("Mirror race skipped: no candidates")
            self._emit_failure(report, "no mirror candidates")
            raise NoUsableMirrorError("no usable mirror: empty candidate list")

        urls: List[str] = []
        for candidate in candidates:
            try:
                url = build_query_url(candidate)
            except ValueError as e:
                logger.info("Could not build url for mirror %s: %s", candidate.address, e)
                report.reasons[candidate.address] = f"bad url: {e}"
                continue
            urls.append(url)

        if not urls:
            self._emit_failure(report, "no buildable mirror url")
            raise NoUsableMirrorError("no usable mirror: no candidate url could be built", reasons=report.reasons)

        cancel = threading.Event()
        results: "queue.Queue" = queue.Queue()
        executor = ThreadPoolExecutor(max_workers=len(urls), thread_name_prefix="mirror-probe")
        futures = []
        for url in urls:
            report.launched += 1
            futures.append(executor.submit(self._probe, url, timeout, cancel, results, report))

        deadline = time.monotonic() + timeout + self.grace_seconds
        pending = len(urls)
        winner_body: Optional[str] = None
        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    break
                left = deadline - time.monotonic()
                if left <= 0:
                    break
                try:
                    url, body = results.get(timeout=min(left, _POLL_SECONDS))
                except queue.Empty:
                    continue
                if body is not None:
                    winner_body = body
                    break
                pending -= 1
        finally:
            cancel.set()
            for future in futures:
                if future.cancel():
                    with report._lock:
                        report.cancelled += 1
            executor.shutdown(wait=False)

        if winner_body is not None:
            logger.debug("Mirror race won by %s", report.winner)
            if self.event_bus is not None:
                self.event_bus.emit(Events.MIRROR_SELECTED, {"url": report.winner})
            return winner_body

        if cancel_event is not None and cancel_event.is_set():
            self._emit_failure(report, "race cancelled")
            raise NoUsableMirrorError("mirror race cancelled", reasons=report.reasons)
        if pending:
            for url in urls:
                report.reasons.setdefault(url, f"no answer within {timeout:.1f}s")
        self._emit_failure(report, "all mirrors rejected")
        raise NoUsableMirrorError(
            f"no usable mirror among {len(urls)} candidate(s)",
            reasons=report.reasons,
        )

    def _probe(self, url: str, timeout: float, cancel: threading.Event, results: "queue.Queue", report: RaceReport):
        if cancel.is_set():
            with report._lock:
                report.cancelled += 1
            return

        try:
            body = self.fetch(url, timeout, cancel)
        except Exception as e:
            with report._lock:
                if cancel.is_set():
                    report.cancelled += 1
                    return
                report.rejected += 1
                report.reasons[url] = str(e)
            logger.debug("Broken mirror %s: %s", url, e)
            results.put((url, None))
            return

        try:
            usable = bool(self.validate(body))
        except Exception as e:
            usable = False
            logger.debug("Validation of %s raised: %s", url, e)

        with report._lock:
            if not usable:
                if cancel.is_set():
                    report.discarded += 1
                    return
                report.rejected += 1
                report.reasons[url] = "response failed structural check"
                logger.debug("Broken mirror %s (code 200 but unusable page)", url)
                results.put((url, None))
                return
            if cancel.is_set():
                report.discarded += 1
                return
            report.accepted += 1
            report.winner = url
            cancel.set()
        results.put((url, body))

    def _emit_failure(self, report: RaceReport, reason: str):
        if self.event_bus is not None:
            self.event_bus.emit(Events.MIRROR_RACE_FAILED, {"reason": reason, "reasons": dict(report.reasons)})
