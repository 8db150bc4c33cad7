"""
Archive.org Search Source
Only items published in the "Archive BitTorrent" format are returned
"""
from typing import List
from urllib.parse import urlencode
import logging

from bs4 import BeautifulSoup

from ..models.search_result import NormalizedResult, SourceId
from .base import BaseSource
from .http import fetch_page, new_session

logger = logging.getLogger(__name__)


class ArchiveSource(BaseSource):
    """archive.org search; no seeder/leecher counts are published"""

    source_id = SourceId.ARCHIVE

    BASE_URL = "https://archive.org"

    def __init__(self, settings=None):
        self.settings = settings
        self.base_url = self.BASE_URL
        if settings is not None:
            self.base_url = (settings.get("archive_base_url", self.BASE_URL) or self.BASE_URL).rstrip("/")

    def build_search_url(self, query: str) -> str:
        """
        https://archive.org/search.php?query=Dumas%20AND%20format%3A%22Archive%20BitTorrent%22
        """
        params = {"query": f'{query} AND format:"Archive BitTorrent"'}
        return f"{self.base_url}/search.php?{urlencode(params)}"

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
        for item in soup.select(".item-ttl.C.C2"):
            link = item.find("a")
            if link is None or not link.get("href"):
                logger.debug("Could not find a description page for a torrent so ignoring it")
                continue
            title_elem = item.select_one(".ttl")
            results.append(NormalizedResult(
                source_id=self.source_id,
                name=title_elem.get_text(strip=True) if title_elem else link.get_text(strip=True),
                desc_url=self.base_url + link["href"],
            ))
        return results
