"""Runtime bootstrap shared by the CLI and the web API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..core.event_bus import EventBus
from ..core.settings_manager import SettingsManager
from ..core.source_manager import SourceManager
from ..models.search_result import SourceId
from ..sources.archive import ArchiveSource
from ..sources.base import BaseSource
from ..sources.piratebay import PirateBaySource
from ..sources.torrentdownloads import TorrentDownloadsSource
from ..sources.x1337 import X1337Source
from ..sources.ygg import YggSource


@dataclass
class ScoutRuntime:
    """Shared service graph used by the CLI and web endpoints."""

    settings: SettingsManager
    event_bus: EventBus
    source_manager: SourceManager


def build_sources(settings: SettingsManager, event_bus: EventBus) -> Dict[SourceId, BaseSource]:
    """One client per supported site, keyed by id."""
    sources = [
        ArchiveSource(settings),
        TorrentDownloadsSource(settings),
        PirateBaySource(settings, event_bus=event_bus),
        X1337Source(settings),
        YggSource(settings),
    ]
    return {src.source_id: src for src in sources}


def build_runtime(settings: Optional[SettingsManager] = None) -> ScoutRuntime:
    """Create and wire core services."""

    settings = settings or SettingsManager()
    event_bus = EventBus()

    enabled_flags = settings.get("enabled_sources", {}) or {}
    enabled = [s for s in SourceId if enabled_flags.get(s.value, True)]

    source_manager = SourceManager(
        event_bus,
        build_sources(settings, event_bus),
        enabled=enabled,
        max_workers=settings.get_int("max_workers", 16),
        timeout_grace_seconds=settings.get_float("timeout_grace_seconds", 1.0),
        default_timeout_seconds=settings.get_float("source_timeout_seconds", 20.0),
    )

    return ScoutRuntime(
        settings=settings,
        event_bus=event_bus,
        source_manager=source_manager,
    )
