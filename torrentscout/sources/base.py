"""
Source SDK
Base interface for torrentscout search sources.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.search_result import NormalizedResult, SourceId


class BaseSource(ABC):
    """
    Stable source contract for the built-in site clients.

    search() either returns the parsed listings or raises; an empty list is a
    valid "no matches" answer, not a failure. The dispatcher sets cancel_event
    once the task is past its deadline; sources hand it to fetch_page so the
    download stops and the worker thread is released.
    """
    source_id: SourceId

    @property
    def name(self) -> str:
        return self.source_id.display_name

    @abstractmethod
    def search(
        self,
        query: str,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[NormalizedResult]:
        """Return search results for a query, fetching within timeout seconds."""
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        """Lightweight payload for the sources listing."""
        return {
            "id": self.source_id.value,
            "name": self.name,
        }
