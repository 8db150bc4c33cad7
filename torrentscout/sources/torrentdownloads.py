"""
Torrent Downloads Search Source
"""
from typing import List
from urllib.parse import urlencode
import logging

from bs4 import BeautifulSoup

from ..models.search_result import NormalizedResult, SourceId, UNKNOWN_SIZE, parse_count
from .base import BaseSource
from .http import fetch_page, new_session

logger = logging.getLogger(__name__)


class TorrentDownloadsSource(BaseSource):
    """torrentdownloads.me search source"""

    source_id = SourceId.TORRENT_DOWNLOADS

    BASE_URL = "https://www.torrentdownloads.me"

    # The results container opens with ten junk blocks (ads, headers) and
    # closes with two more.
    LEADING_JUNK = 10
    TRAILING_JUNK = 2

    def __init__(self, settings=None):
        self.settings = settings
        self.base_url = self.BASE_URL
        if settings is not None:
            self.base_url = (settings.get("torrentdownloads_base_url", self.BASE_URL) or self.BASE_URL).rstrip("/")

    def build_search_url(self, query: str) -> str:
        """https://www.torrentdownloads.me/search/?search=Dumas"""
        return f"{self.base_url}/search/?{urlencode({'search': query})}"

    def search(self, query: str, timeout: float, cancel_event=None) -> List[NormalizedResult]:
        session = new_session()
        try:
            html = fetch_page(
                session, self.build_search_url(query), timeout,
                source_id=self.source_id, cancel_event=cancel_event,
            )
        finally:
            session.close()
        return self.parse_search_page(html)

    def parse_search_page(self, html: str) -> List[NormalizedResult]:
        soup = BeautifulSoup(html or "", "html.parser")
        container = soup.select_one(".inner_container")
        if container is None:
            return []
        blocks = container.find_all(recursive=False)
        results: List[NormalizedResult] = []
        for block in blocks[self.LEADING_JUNK:len(blocks) - self.TRAILING_JUNK]:
            link = block.select_one("p a")
            if link is None or not link.get("href"):
                logger.debug("Could not find the description URL of a torrent")
                continue
            spans = block.find_all("span")

            def _span_text(index: int) -> str:
                return spans[index].get_text(strip=True) if len(spans) > index else ""

            results.append(NormalizedResult(
                source_id=self.source_id,
                name=link.get_text(strip=True),
                desc_url=self.base_url + link["href"],
                size=_span_text(3) or UNKNOWN_SIZE,
                leechers=parse_count(_span_text(1)),
                seeders=parse_count(_span_text(2)),
            ))
        return results
