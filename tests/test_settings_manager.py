import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from torrentscout.core.settings_manager import SettingsManager


class TestSettingsManager(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_defaults(self):
        settings = SettingsManager(settings_dir=self.dir)
        self.assertEqual(settings.get("source_timeout_seconds"), 20.0)
        self.assertEqual(settings.get("piratebay_proxy_directory_url"), "https://proxybay.bz/")
        self.assertTrue(all(settings.get("enabled_sources").values()))
        self.assertFalse((self.dir / "settings.json").exists())

    def test_set_persists(self):
        settings = SettingsManager(settings_dir=self.dir)
        settings.set("source_timeout_seconds", 5)
        reloaded = SettingsManager(settings_dir=self.dir)
        self.assertEqual(reloaded.get("source_timeout_seconds"), 5)

    def test_partial_file_is_merged_over_defaults(self):
        (self.dir / "settings.json").write_text(json.dumps({
            "enabled_sources": {"ygg": False},
            "piratebay_fallback_mirrors": ["https://my.mirror/"],
        }), encoding="utf-8")
        settings = SettingsManager(settings_dir=self.dir)
        flags = settings.get("enabled_sources")
        self.assertFalse(flags["ygg"])
        self.assertTrue(flags["tpb"])
        mirrors = settings.get("piratebay_fallback_mirrors")
        self.assertEqual(mirrors[0], "https://my.mirror")
        for required in SettingsManager.REQUIRED_PIRATEBAY_FALLBACK_MIRRORS:
            self.assertIn(required, mirrors)
        self.assertEqual(settings.get("max_workers"), 16)

    def test_corrupt_file_falls_back_to_defaults(self):
        (self.dir / "settings.json").write_text("{not json", encoding="utf-8")
        with self.assertLogs("torrentscout.core.settings_manager", level="WARNING"):
            settings = SettingsManager(settings_dir=self.dir)
        self.assertEqual(settings.get("max_workers"), 16)

    def test_numeric_getters_fall_back(self):
        settings = SettingsManager(settings_dir=self.dir, persist=False)
        settings.update({"source_timeout_seconds": "abc", "max_workers": -3})
        self.assertEqual(settings.get_float("source_timeout_seconds", 20.0), 20.0)
        self.assertEqual(settings.get_int("max_workers", 16), 16)
        self.assertFalse((self.dir / "settings.json").exists())

    def test_reset(self):
        settings = SettingsManager(settings_dir=self.dir)
        settings.set("timeout_grace_seconds", 9.0)
        settings.reset()
        self.assertEqual(settings.get("timeout_grace_seconds"), 1.0)

    def test_data_dir_env(self):
        with mock.patch.dict(os.environ, {"TORRENTSCOUT_DATA_DIR": str(self.dir / "alt")}):
            settings = SettingsManager()
        self.assertEqual(settings.settings_file, self.dir / "alt" / "settings.json")


if __name__ == "__main__":
    unittest.main()
