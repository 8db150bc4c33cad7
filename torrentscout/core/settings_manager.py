"""
Settings Manager
Handles persistent application settings in user home directory
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional
import threading

logger = logging.getLogger(__name__)


class SettingsManager:
    """Manages application settings with persistence"""

    REQUIRED_PIRATEBAY_FALLBACK_MIRRORS = [
        "https://thepiratebay.org",
        "https://tpb.party",
        "https://thepiratebay.zone",
    ]

    DEFAULT_SETTINGS = {
        # Lookup
        "source_timeout_seconds": 20.0,
        "timeout_grace_seconds": 1.0,
        "max_workers": 16,

        # Sources
        "enabled_sources": {
            "arc": True,
            "td": True,
            "tpb": True,
            "otts": True,
            "ygg": True,
        },
        "archive_base_url": "https://archive.org",
        "torrentdownloads_base_url": "https://www.torrentdownloads.me",
        "x1337_base_url": "https://1337x.to",
        "ygg_base_url": "https://yggtorrent.to",

        # The Pirate Bay mirror discovery/racing
        "piratebay_proxy_directory_url": "https://proxybay.bz/",
        "piratebay_fallback_mirrors": [
            "https://thepiratebay.org",
            "https://tpb.party",
            "https://thepiratebay.zone",
        ],
        "piratebay_result_marker": "#searchResult",
    }

    def __init__(self, settings_dir: Optional[Path] = None, persist: bool = True):
        # Settings stored in user home
        if settings_dir is None:
            data_dir = str(os.environ.get("TORRENTSCOUT_DATA_DIR", "") or "").strip()
            settings_dir = Path(data_dir).expanduser() if data_dir else (Path.home() / ".torrentscout")
        self.settings_dir = Path(settings_dir)
        self.settings_file = self.settings_dir / "settings.json"
        self._persist = persist

        self._lock = threading.RLock()
        self._settings: Dict[str, Any] = {}
        self._load()

    def _defaults(self) -> Dict[str, Any]:
        # Deep enough copy for the nested dict/list defaults.
        return json.loads(json.dumps(self.DEFAULT_SETTINGS))

    def _load(self):
        """Load settings from file"""
        with self._lock:
            if self._persist and self.settings_file.exists():
                try:
                    with open(self.settings_file, 'r', encoding="utf-8") as f:
                        loaded = json.load(f)
                    if not isinstance(loaded, dict):
                        raise ValueError("settings root must be an object")
                    # Merge with defaults (adds new keys if they don't exist)
                    defaults = self._defaults()
                    self._settings = {**defaults, **loaded}
                    # Deep-merge nested source flags so new sources get default states.
                    loaded_sources = loaded.get("enabled_sources", {})
                    if not isinstance(loaded_sources, dict):
                        loaded_sources = {}
                    self._settings["enabled_sources"] = {**defaults["enabled_sources"], **loaded_sources}
                except (OSError, ValueError) as e:
                    logger.warning("Error loading settings from %s: %s", self.settings_file, e)
                    self._settings = self._defaults()
            else:
                self._settings = self._defaults()

            self._ensure_required_mirrors()

    def _ensure_required_mirrors(self) -> bool:
        # Keep baseline fallback mirrors available even if the user list was trimmed.
        existing = self._settings.get("piratebay_fallback_mirrors", [])
        if not isinstance(existing, list):
            existing = []
        normalized = []
        for item in list(existing) + self.REQUIRED_PIRATEBAY_FALLBACK_MIRRORS:
            text = str(item or "").strip().rstrip("/")
            if text and text not in normalized:
                normalized.append(text)
        changed = normalized != existing
        self._settings["piratebay_fallback_mirrors"] = normalized
        return changed

    def _save(self):
        """Save settings to file"""
        if not self._persist:
            return
        with self._lock:
            try:
                self.settings_dir.mkdir(parents=True, exist_ok=True)
                with open(self.settings_file, 'w', encoding="utf-8") as f:
                    json.dump(self._settings, f, indent=2)
            except OSError as e:
                logger.warning("Error saving settings to %s: %s", self.settings_file, e)

    def get(self, key: str, default=None) -> Any:
        """Get a setting value"""
        with self._lock:
            return self._settings.get(key, default)

    def get_float(self, key: str, fallback: float) -> float:
        try:
            value = float(self.get(key, fallback))
        except (TypeError, ValueError):
            return fallback
        return value if value > 0 else fallback

    def get_int(self, key: str, fallback: int) -> int:
        try:
            value = int(self.get(key, fallback))
        except (TypeError, ValueError):
            return fallback
        return value if value > 0 else fallback

    def set(self, key: str, value: Any):
        """Set a setting value and save"""
        with self._lock:
            self._settings[str(key)] = value
            self._save()

    def update(self, settings_dict: Dict[str, Any]):
        """Update multiple settings at once"""
        with self._lock:
            self._settings.update(dict(settings_dict or {}))
            self._save()

    def get_all(self) -> Dict[str, Any]:
        """Get all settings"""
        with self._lock:
            return self._settings.copy()

    def reset(self):
        """Reset to default settings"""
        with self._lock:
            self._settings = self._defaults()
            self._ensure_required_mirrors()
            self._save()
