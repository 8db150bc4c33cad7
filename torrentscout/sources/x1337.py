"""
1337x Search Source
Listing-page scraping; magnets stay on the description pages
"""
from typing import List, Optional
from urllib.parse import quote
import logging

from bs4 import BeautifulSoup

from ..models.search_result import NormalizedResult, SourceId, UNKNOWN_SIZE, parse_count
from .base import BaseSource
from .http import fetch_page, new_session

logger = logging.getLogger(__name__)


class X1337Source(BaseSource):
    """1337x torrent search source"""

    source_id = SourceId.X1337

    BASE_URL = "https://1337x.to"

    def __init__(self, settings=None):
        self.settings = settings
        self.base_url = self.BASE_URL
        if settings is not None:
            self.base_url = (settings.get("x1337_base_url", self.BASE_URL) or self.BASE_URL).rstrip("/")

    def build_search_url(self, query: str) -> str:
        """A typical final url looks like: https://1337x.to/search/Dumas/1/"""
        return f"{self.base_url}/search/{quote(query)}/1/"

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
        results: List[NormalizedResult] = []
        for row in soup.select("tbody tr"):
            result = self._parse_listing_row(row)
            if result is not None:
                results.append(result)
        return results

    def _parse_listing_row(self, row) -> Optional[NormalizedResult]:
        # First link is the category icon, the second one the torrent page.
        links = row.find_all("a")
        if len(links) < 2 or not links[1].get("href"):
            logger.debug("Could not find a description page for a torrent so ignoring it")
            return None
        name_elem = links[1]
        path = name_elem["href"]
        desc_url = path if path.startswith(("http://", "https://")) else self.base_url + path

        cells = row.find_all("td")

        def _cell_text(index: int) -> str:
            if len(cells) <= index:
                return ""
            return cells[index].get_text(strip=True)

        # The size cell also holds the seeders count in a nested span on some layouts.
        size_text = _cell_text(4)
        if len(cells) > 4:
            size_cell = cells[4]
            nested = size_cell.find("span")
            if nested is not None:
                size_text = size_cell.get_text(strip=True).replace(nested.get_text(strip=True), "").strip()

        return NormalizedResult(
            source_id=self.source_id,
            name=name_elem.get_text(strip=True),
            desc_url=desc_url,
            size=size_text or UNKNOWN_SIZE,
            upload_date=_cell_text(3),
            seeders=parse_count(_cell_text(1)),
            leechers=parse_count(_cell_text(2)),
        )
