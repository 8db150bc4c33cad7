"""
YggTorrent Search Source
Searching is anonymous; downloads need an account and are not handled here
"""
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode
import logging

from bs4 import BeautifulSoup

from ..models.search_result import NormalizedResult, SourceId, UNKNOWN_SIZE, parse_count
from .base import BaseSource
from .http import fetch_page, new_session

logger = logging.getLogger(__name__)


def format_timestamp(text: str) -> str:
    """Unix timestamp text -> "YYYY/MM/DD HH:MM" (local time); "" when unparsable."""
    try:
        return datetime.fromtimestamp(int(str(text).strip())).strftime("%Y/%m/%d %H:%M")
    except (TypeError, ValueError, OverflowError, OSError):
        return ""


class YggSource(BaseSource):
    """yggtorrent search source"""

    source_id = SourceId.YGG

    BASE_URL = "https://yggtorrent.to"

    def __init__(self, settings=None):
        self.settings = settings
        self.base_url = self.BASE_URL
        if settings is not None:
            self.base_url = (settings.get("ygg_base_url", self.BASE_URL) or self.BASE_URL).rstrip("/")

    def build_search_url(self, query: str) -> str:
        # Parameters are rebuilt per call; nothing is accumulated across searches.
        return f"{self.base_url}/engine/search?{urlencode({'do': 'search', 'name': query})}"

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
        for row in soup.select(".table tbody tr"):
            result = self._parse_row(row)
            if result is not None:
                results.append(result)
        return results

    def _parse_row(self, row) -> Optional[NormalizedResult]:
        links = row.select("td a")
        if len(links) < 2 or not links[1].get("href"):
            logger.debug("Could not find description URL for a torrent so ignoring it")
            return None
        cells = row.find_all("td")

        def _cell(index: int):
            return cells[index] if len(cells) > index else None

        upload_date = ""
        date_cell = _cell(4)
        if date_cell is not None:
            hidden = date_cell.select_one(".hidden")
            if hidden is not None:
                upload_date = format_timestamp(hidden.get_text(strip=True))

        size_cell = _cell(5)
        seeders_cell = _cell(7)
        leechers_cell = _cell(8)
        return NormalizedResult(
            source_id=self.source_id,
            name=links[1].get_text(strip=True),
            desc_url=links[1]["href"],
            size=(size_cell.get_text(strip=True) if size_cell is not None else "") or UNKNOWN_SIZE,
            upload_date=upload_date,
            seeders=parse_count(seeders_cell.get_text(strip=True)) if seeders_cell is not None else None,
            leechers=parse_count(leechers_cell.get_text(strip=True)) if leechers_cell is not None else None,
        )
