"""
Search Result Model
Shared contracts between sources, the dispatcher and the ranker
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple
import math
import re

from ..core.errors import InvalidRequestError, UnknownSourceError


UNKNOWN_SIZE = "unknown"


class SourceId(Enum):
    """Fixed set of supported sites"""
    ARCHIVE = "arc"
    TORRENT_DOWNLOADS = "td"
    PIRATEBAY = "tpb"
    X1337 = "otts"
    YGG = "ygg"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, text: str) -> "SourceId":
        """Resolve a short code such as "tpb" (case-insensitive)"""
        code = (text or "").strip().lower()
        for member in cls:
            if member.value == code:
                return member
        raise UnknownSourceError(f"This website is not correct: {text!r}")

    @classmethod
    def parse_many(cls, codes: Iterable[str]) -> FrozenSet["SourceId"]:
        """
        Resolve a collection of short codes.
        "all" expands to every source; duplicates collapse.
        """
        out = set()
        for code in codes:
            code = (code or "").strip()
            if not code:
                continue
            if code.lower() == "all":
                return frozenset(cls)
            out.add(cls.parse(code))
        return frozenset(out)


_DISPLAY_NAMES = {
    SourceId.ARCHIVE: "Archive",
    SourceId.TORRENT_DOWNLOADS: "Torrent Downloads",
    SourceId.PIRATEBAY: "The Pirate Bay",
    SourceId.X1337: "1337x",
    SourceId.YGG: "Ygg Torrent",
}


def parse_count(text) -> Optional[int]:
    """
    Convert a scraped seeder/leecher cell to a count.
    Anything that is not a plain non-negative integer means unknown (None).
    """
    if isinstance(text, int):
        return text if text >= 0 else None
    cleaned = re.sub(r"[,\s]", "", str(text or ""))
    if not cleaned.isdigit():
        return None
    return int(cleaned)


@dataclass(frozen=True)
class NormalizedResult:
    """One torrent listing as produced by a source"""
    source_id: SourceId
    name: str
    desc_url: str = ""
    magnet: str = ""
    file_url: str = ""
    size: str = UNKNOWN_SIZE
    upload_date: str = ""
    seeders: Optional[int] = None  # None = unknown
    leechers: Optional[int] = None

    def __post_init__(self):
        for attr in ("seeders", "leechers"):
            value = getattr(self, attr)
            if value is not None and value < 0:
                raise ValueError(f"{attr} must be >= 0 or None, got {value}")

    @property
    def seeders_display(self) -> str:
        return "Unknown" if self.seeders is None else str(self.seeders)

    @property
    def leechers_display(self) -> str:
        return "Unknown" if self.leechers is None else str(self.leechers)

    def to_dict(self) -> Dict:
        return {
            "source": self.source_id.value,
            "sourceName": self.source_id.display_name,
            "name": self.name,
            "descUrl": self.desc_url,
            "magnet": self.magnet,
            "fileUrl": self.file_url,
            "size": self.size,
            "uploadDate": self.upload_date,
            "seeders": self.seeders,
            "leechers": self.leechers,
        }


@dataclass(frozen=True)
class SearchRequest:
    """User search, immutable once dispatched"""
    query: str
    timeout: float
    sources: FrozenSet[SourceId]

    def __post_init__(self):
        query = (self.query or "").strip()
        if not query:
            raise InvalidRequestError("User input should not be empty")
        try:
            timeout = float(self.timeout)
        except (TypeError, ValueError):
            raise InvalidRequestError(f"Invalid timeout: {self.timeout!r}") from None
        if not math.isfinite(timeout) or timeout <= 0:
            raise InvalidRequestError(f"Timeout must be a positive number of seconds, got {timeout}")
        sources = frozenset(self.sources or ())
        if not sources:
            raise InvalidRequestError("At least one source must be selected")
        for source_id in sources:
            if not isinstance(source_id, SourceId):
                raise InvalidRequestError(f"Invalid source id: {source_id!r}")
        # Frozen dataclass: normalized values go through object.__setattr__.
        object.__setattr__(self, "query", query)
        object.__setattr__(self, "timeout", timeout)
        object.__setattr__(self, "sources", sources)


@dataclass(frozen=True)
class SourceOutcome:
    """Result of one fan-out task: success with results, or failure with error"""
    source_id: SourceId
    results: Tuple[NormalizedResult, ...] = ()
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, source_id: SourceId, results: Iterable[NormalizedResult]) -> "SourceOutcome":
        return cls(source_id=source_id, results=tuple(results))

    @classmethod
    def failure(cls, source_id: SourceId, error: BaseException) -> "SourceOutcome":
        return cls(source_id=source_id, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AggregateResult:
    """Merged, ranked results of one lookup"""
    merged: Tuple[NormalizedResult, ...] = ()
    failed_sources: FrozenSet[SourceId] = frozenset()
    all_failed: bool = False
    errors: Mapping[SourceId, str] = field(default_factory=dict)
    requested_sources: FrozenSet[SourceId] = frozenset()

    def __post_init__(self):
        # Read-only copy: the aggregate is shared with event handlers and the web layer.
        object.__setattr__(self, "errors", MappingProxyType(dict(self.errors)))

    @property
    def is_empty(self) -> bool:
        return not self.merged

    @property
    def succeeded_sources(self) -> FrozenSet[SourceId]:
        return frozenset(self.requested_sources - self.failed_sources)

    def to_dict(self) -> Dict:
        return {
            "results": [r.to_dict() for r in self.merged],
            "count": len(self.merged),
            "failedSources": sorted(s.value for s in self.failed_sources),
            "errors": {s.value: msg for s, msg in sorted(self.errors.items(), key=lambda kv: kv[0].value)},
            "allFailed": self.all_failed,
            "noResults": (not self.all_failed) and self.is_empty,
        }


@dataclass(frozen=True)
class MirrorCandidate:
    """One alternate address of a mirror-based site"""
    address: str


def dedupe_candidates(addresses: Iterable[str]) -> List[MirrorCandidate]:
    """Normalize addresses (strip trailing slash) and keep first occurrence order"""
    seen = set()
    out: List[MirrorCandidate] = []
    for address in addresses:
        text = str(address or "").strip().rstrip("/")
        if not text or text in seen:
            continue
        seen.add(text)
        out.append(MirrorCandidate(address=text))
    return out
