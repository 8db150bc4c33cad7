"""
PirateBay Search Source
Discovers live mirrors from a proxy directory and races them
"""
from typing import Callable, List, Optional
from urllib.parse import quote, urljoin, urlparse
import logging
import time

from bs4 import BeautifulSoup

from ..core.errors import NoUsableMirrorError, SourceError
from ..core.event_bus import EventBus
from ..core.mirror_racer import MirrorRacer, RaceReport
from ..models.search_result import (
    MirrorCandidate,
    NormalizedResult,
    SourceId,
    UNKNOWN_SIZE,
    dedupe_candidates,
    parse_count,
)
from .base import BaseSource
from .http import fetch_page, new_session

logger = logging.getLogger(__name__)

DEFAULT_PROXY_DIRECTORY_URL = "https://proxybay.bz/"
DEFAULT_RESULT_MARKER = "#searchResult"


def _site_root(url: str) -> str:
    parsed = urlparse(url or "")
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


class ProxyDirectory:
    """Mirror discovery from a proxy-directory page"""

    def __init__(self, url: str = DEFAULT_PROXY_DIRECTORY_URL, fetch: Optional[Callable[..., str]] = None):
        self.url = url
        self._fetch = fetch or self._fetch_with_session

    @staticmethod
    def _fetch_with_session(url: str, timeout: float, cancel_event=None) -> str:
        session = new_session()
        try:
            return fetch_page(session, url, timeout, source_id=SourceId.PIRATEBAY, cancel_event=cancel_event)
        finally:
            session.close()

    def list_candidates(self, timeout: float, cancel_event=None) -> List[MirrorCandidate]:
        """Fetch the directory and return its mirrors in page order."""
        if cancel_event is None:
            html = self._fetch(self.url, timeout)
        else:
            html = self._fetch(self.url, timeout, cancel_event)
        return dedupe_candidates(self.parse_proxies_page(html))

    @staticmethod
    def parse_proxies_page(html: str) -> List[str]:
        """Every directory row links its mirror host as the text of the first <a>."""
        soup = BeautifulSoup(html or "", "html.parser")
        rows = soup.select(".proxies tbody tr") or soup.select(".proxies tr")
        urls = []
        for row in rows:
            link = row.find("a")
            host = link.get_text(strip=True).lower() if link else ""
            if not host:
                logger.debug("could not find an url for a proxy")
                continue
            if not host.startswith(("http://", "https://")):
                host = "https://" + host
            urls.append(host)
        return urls


class PirateBaySource(BaseSource):
    """The Pirate Bay search source with mirror racing"""

    source_id = SourceId.PIRATEBAY

    PARKED_SIGNALS = [
        "fastpanel",
        "view more possible reasons",
        "captcha",
        "just a moment",
        "ddos protection",
        "domain is for sale",
    ]

    def __init__(
        self,
        settings=None,
        racer: Optional[MirrorRacer] = None,
        directory: Optional[ProxyDirectory] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.settings = settings
        self.fallback_mirrors: List[str] = []
        self.result_marker = DEFAULT_RESULT_MARKER
        directory_url = DEFAULT_PROXY_DIRECTORY_URL
        grace = 1.0
        if settings is not None:
            self.fallback_mirrors = list(settings.get("piratebay_fallback_mirrors", []) or [])
            self.result_marker = settings.get("piratebay_result_marker", DEFAULT_RESULT_MARKER) or DEFAULT_RESULT_MARKER
            directory_url = settings.get("piratebay_proxy_directory_url", DEFAULT_PROXY_DIRECTORY_URL) or DEFAULT_PROXY_DIRECTORY_URL
            grace = settings.get_float("timeout_grace_seconds", 1.0)
        self.directory = directory or ProxyDirectory(directory_url)
        self.racer = racer or MirrorRacer(self.looks_usable, grace_seconds=grace, event_bus=event_bus)

    def search(self, query: str, timeout: float, cancel_event=None) -> List[NormalizedResult]:
        """
        Search The Pirate Bay

        1. Discover the current mirror list (plus configured fallbacks)
        2. Race the search page on every mirror
        3. Parse the first page that carries the results table
        """
        started = time.monotonic()
        candidates = self.list_candidates(max(1.0, timeout / 3.0), cancel_event)
        remaining = max(0.5, timeout - (time.monotonic() - started))

        report = RaceReport()
        try:
            body = self.racer.race(
                candidates,
                lambda candidate: self.build_search_url(candidate.address, query),
                remaining,
                report=report,
                cancel_event=cancel_event,
            )
        except NoUsableMirrorError as e:
            e.source_id = self.source_id
            raise

        return self.parse_search_page(body, base_url=_site_root(report.winner))

    def list_candidates(self, timeout: float, cancel_event=None) -> List[MirrorCandidate]:
        """Directory mirrors first, configured fallbacks after; duplicates dropped."""
        discovered: List[MirrorCandidate] = []
        try:
            discovered = self.directory.list_candidates(timeout, cancel_event)
        except SourceError as e:
            if not self.fallback_mirrors:
                raise SourceError(f"error while retrieving proxies: {e}", source_id=self.source_id) from e
            logger.info("Proxy directory unavailable, using fallback mirrors only: %s", e)
        addresses = [c.address for c in discovered] + list(self.fallback_mirrors)
        return dedupe_candidates(addresses)

    @staticmethod
    def build_search_url(base_url: str, query: str) -> str:
        """A typical final url looks like: <mirror>/search/dumas/0/99/0"""
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"error during url parsing: {base_url!r}")
        return f"{base_url.rstrip('/')}/search/{quote(query)}/0/99/0"

    def looks_usable(self, html: str) -> bool:
        """Genuine result pages carry the results table; parked pages do not."""
        low = (html or "").lower()
        if any(sig in low for sig in self.PARKED_SIGNALS):
            return False
        soup = BeautifulSoup(html or "", "html.parser")
        return soup.select_one(self.result_marker) is not None

    def parse_search_page(self, html: str, base_url: str = "") -> List[NormalizedResult]:
        soup = BeautifulSoup(html or "", "html.parser")
        # Older mirrors include <tbody>; newer mirrors often don't.
        rows = soup.select("#searchResult tbody tr") or soup.select("#searchResult tr")
        results: List[NormalizedResult] = []
        for row in rows:
            result = self._parse_row(row, base_url)
            if result is not None:
                results.append(result)
        return results

    def _parse_row(self, row, base_url: str) -> Optional[NormalizedResult]:
        cells = row.find_all("td")
        if not cells:
            return None

        # The trailing pagination row has no magnet and is skipped here.
        magnet_elem = row.select_one('a[href^="magnet:"]')
        if not magnet_elem:
            logger.debug("Could not find a magnet for a torrent so ignoring it")
            return None

        name_elem = row.select_one(".detLink") or row.select_one(".detName a")
        name = name_elem.get_text(strip=True) if name_elem else ""
        desc_url = ""
        if name_elem is not None and name_elem.get("href"):
            desc_url = urljoin(base_url.rstrip("/") + "/", name_elem["href"]) if base_url else name_elem["href"]

        # "Uploaded 03-12 2019, Size 1.2 GiB, ULed by someone"
        upload_date = ""
        size = UNKNOWN_SIZE
        desc_elem = row.find("font") or row.select_one(".detDesc")
        if desc_elem:
            parts = desc_elem.get_text().replace("\xa0", " ").split(",")
            if len(parts) > 1:
                upload_date = parts[0].replace("Uploaded", "").strip()
                size = parts[1].replace("Size", "").strip() or UNKNOWN_SIZE

        seeders = parse_count(cells[2].get_text(strip=True)) if len(cells) > 2 else None
        leechers = parse_count(cells[3].get_text(strip=True)) if len(cells) > 3 else None

        return NormalizedResult(
            source_id=self.source_id,
            name=name,
            desc_url=desc_url,
            magnet=magnet_elem["href"],
            size=size,
            upload_date=upload_date,
            seeders=seeders,
            leechers=leechers,
        )
