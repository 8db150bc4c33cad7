"""
Error Types
Failures raised by sources, the mirror racer and the lookup entry point
"""
from typing import Optional


class TorrentScoutError(Exception):
    """Base class for every torrentscout error"""


class InvalidRequestError(TorrentScoutError, ValueError):
    """A search request that cannot be dispatched"""


class UnknownSourceError(TorrentScoutError, KeyError):
    """A source id that is not registered or not known at all"""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class SourceError(TorrentScoutError):
    """Failure of a single source; never fatal to the aggregate"""

    def __init__(self, message: str, source_id=None):
        super().__init__(message)
        self.source_id = source_id


class SourceTimeoutError(SourceError):
    """A source task did not finish before its deadline"""


class NoUsableMirrorError(SourceError):
    """Every mirror candidate was unreachable or served an unusable page"""

    def __init__(self, message: str = "no usable mirror", source_id=None, reasons: Optional[dict] = None):
        super().__init__(message, source_id=source_id)
        self.reasons = dict(reasons or {})


class AllSourcesFailedError(TorrentScoutError):
    """Every selected source failed; carries the (empty) aggregate"""

    def __init__(self, result, message: str = "All searches returned an error"):
        super().__init__(message)
        self.result = result
