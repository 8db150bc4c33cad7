import threading
import unittest

from torrentscout.core.errors import AllSourcesFailedError, NoUsableMirrorError, SourceError
from torrentscout.core.event_bus import EventBus, Events
from torrentscout.core.source_manager import SourceManager
from torrentscout.models.search_result import NormalizedResult, SearchRequest, SourceId
from torrentscout.sources.base import BaseSource


class FakeSource(BaseSource):
    def __init__(self, source_id, results=(), error=None):
        self.source_id = source_id
        self.results = list(results)
        self.error = error

    def search(self, query: str, timeout: float, cancel_event=None):
        if self.error is not None:
            raise self.error
        return list(self.results)


class HangingSource(BaseSource):
    """Never answers on its own; gives up only when the dispatcher cancels it."""

    def __init__(self, source_id):
        self.source_id = source_id
        self.release = threading.Event()

    def search(self, query: str, timeout: float, cancel_event=None):
        while not self.release.wait(0.05):
            if cancel_event is not None and cancel_event.is_set():
                raise SourceError("fetch cancelled", source_id=self.source_id)
        return [_r(self.source_id, "too late", 999)]


def _r(source_id, name, seeders=None):
    return NormalizedResult(source_id=source_id, name=name, seeders=seeders, leechers=seeders)


class TestPartialFailure(unittest.TestCase):
    def setUp(self):
        self.bus = EventBus()
        self.events = {Events.SOURCE_FAILED: [], Events.SEARCH_ERROR: [], Events.SEARCH_COMPLETED: []}
        for name, sink in self.events.items():
            self.bus.subscribe(name, sink.append)
        self._managers = []

    def tearDown(self):
        for sm in self._managers:
            sm.shutdown()

    def _lookup(self, *sources):
        sm = SourceManager(self.bus, {s.source_id: s for s in sources})
        self._managers.append(sm)
        return sm.lookup(SearchRequest("Monte Cristo", 5, frozenset(s.source_id for s in sources)))

    def test_monte_cristo(self):
        tpb = FakeSource(SourceId.PIRATEBAY, error=NoUsableMirrorError("no usable mirror among 3 candidate(s)"))
        arc = FakeSource(SourceId.ARCHIVE, [
            _r(SourceId.ARCHIVE, "The Count of Monte Cristo (audio)"),
            _r(SourceId.ARCHIVE, "Le Comte de Monte-Cristo"),
            _r(SourceId.ARCHIVE, "Monte Cristo 1934"),
        ])
        otts = FakeSource(SourceId.X1337, [
            _r(SourceId.X1337, "Monte Cristo 2002 720p", 5),
            _r(SourceId.X1337, "Monte Cristo 2024 1080p", 50),
        ])

        result = self._lookup(tpb, arc, otts)

        self.assertFalse(result.all_failed)
        self.assertEqual(result.failed_sources, frozenset({SourceId.PIRATEBAY}))
        self.assertEqual([r.name for r in result.merged], [
            "Monte Cristo 2024 1080p",
            "Monte Cristo 2002 720p",
            "The Count of Monte Cristo (audio)",
            "Le Comte de Monte-Cristo",
            "Monte Cristo 1934",
        ])
        self.assertEqual(len(self.events[Events.SOURCE_FAILED]), 1)
        self.assertEqual(self.events[Events.SOURCE_FAILED][0]["source"], "tpb")
        self.assertIn("no usable mirror", self.events[Events.SOURCE_FAILED][0]["error"])
        self.assertEqual(self.events[Events.SEARCH_ERROR], [])

    def test_monte_cristo_with_hanging_source(self):
        arc = FakeSource(SourceId.ARCHIVE, [
            _r(SourceId.ARCHIVE, "Monte Cristo 1934", 10),
            _r(SourceId.ARCHIVE, "The Count of Monte Cristo (audio)"),
        ])
        tpb = HangingSource(SourceId.PIRATEBAY)
        otts = FakeSource(SourceId.X1337, [_r(SourceId.X1337, "Monte Cristo 2024 1080p", 50)])
        sm = SourceManager(self.bus, {s.source_id: s for s in (arc, tpb, otts)}, timeout_grace_seconds=0.1)
        self._managers.append(sm)

        try:
            result = sm.lookup(SearchRequest("Monte Cristo", 0.3, frozenset({SourceId.ARCHIVE, SourceId.PIRATEBAY, SourceId.X1337})))
        finally:
            tpb.release.set()

        self.assertEqual(
            [(r.source_id, r.name, r.seeders) for r in result.merged],
            [
                (SourceId.X1337, "Monte Cristo 2024 1080p", 50),
                (SourceId.ARCHIVE, "Monte Cristo 1934", 10),
                (SourceId.ARCHIVE, "The Count of Monte Cristo (audio)", None),
            ],
        )
        self.assertFalse(result.all_failed)
        self.assertEqual(result.failed_sources, frozenset({SourceId.PIRATEBAY}))
        self.assertEqual(result.errors[SourceId.PIRATEBAY], "The Pirate Bay timed out after 0.3s")
        self.assertEqual([e["source"] for e in self.events[Events.SOURCE_FAILED]], ["tpb"])
        self.assertEqual(self.events[Events.SEARCH_ERROR], [])

    def test_one_event_per_failure(self):
        result = self._lookup(
            FakeSource(SourceId.PIRATEBAY, error=SourceError("status code error: 503")),
            FakeSource(SourceId.YGG, error=RuntimeError("parser exploded")),
            FakeSource(SourceId.ARCHIVE, [_r(SourceId.ARCHIVE, "ok")]),
        )
        self.assertEqual(result.failed_sources, frozenset({SourceId.PIRATEBAY, SourceId.YGG}))
        self.assertEqual(sorted(e["source"] for e in self.events[Events.SOURCE_FAILED]), ["tpb", "ygg"])
        self.assertEqual(result.errors[SourceId.YGG], "parser exploded")

    def test_all_sources_failed(self):
        with self.assertRaises(AllSourcesFailedError) as ctx:
            self._lookup(
                FakeSource(SourceId.PIRATEBAY, error=NoUsableMirrorError()),
                FakeSource(SourceId.X1337, error=SourceError("could not launch request")),
            )
        result = ctx.exception.result
        self.assertTrue(result.all_failed)
        self.assertEqual(result.merged, ())
        self.assertEqual(result.failed_sources, frozenset({SourceId.PIRATEBAY, SourceId.X1337}))
        self.assertEqual(len(self.events[Events.SEARCH_ERROR]), 1)
        self.assertEqual(len(self.events[Events.SOURCE_FAILED]), 2)
        self.assertEqual(str(ctx.exception), "All searches returned an error")

    def test_empty_success_is_not_a_failure(self):
        result = self._lookup(FakeSource(SourceId.ARCHIVE), FakeSource(SourceId.YGG))
        self.assertTrue(result.is_empty)
        self.assertFalse(result.all_failed)
        self.assertEqual(result.failed_sources, frozenset())
        self.assertTrue(result.to_dict()["noResults"])
        self.assertEqual(len(self.events[Events.SEARCH_COMPLETED]), 1)

    def test_failure_plus_empty_success_is_no_results(self):
        result = self._lookup(
            FakeSource(SourceId.ARCHIVE),
            FakeSource(SourceId.TORRENT_DOWNLOADS, error=SourceError("status code error: 404")),
        )
        self.assertFalse(result.all_failed)
        payload = result.to_dict()
        self.assertTrue(payload["noResults"])
        self.assertEqual(payload["failedSources"], ["td"])
        self.assertEqual(result.succeeded_sources, frozenset({SourceId.ARCHIVE}))


if __name__ == "__main__":
    unittest.main()
