"""
Tests for window bounds persistence.

Tests cover:
- Loading defaults when the state file is missing, corrupt or partial
- Writing bounds (with and without a position)
- Write failures reported once per failure streak
- The main window saving its bounds when moved or resized
"""

import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from qt_app import get_app, wait_until

import radio_garden as rg


class TestWindowStateStoreLoad(unittest.TestCase):
    """Loading never fails and falls back to 420x800 without a position."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / rg.WINDOW_STATE_FILE
        self.store = rg.WindowStateStore(self.path)

    def test_missing_file_returns_default(self):
        geometry = self.store.load()
        self.assertEqual((geometry.width, geometry.height), (420, 800))
        self.assertIsNone(geometry.x)
        self.assertIsNone(geometry.y)

    def test_corrupt_file_returns_default(self):
        self.path.write_text("{not json", encoding="utf-8")
        with patch("sys.stderr", new_callable=io.StringIO):
            geometry = self.store.load()
        self.assertEqual(geometry, rg.WindowGeometry())

    def test_non_object_payload_returns_default(self):
        self.path.write_text("[1, 2, 3]", encoding="utf-8")
        self.assertEqual(self.store.load(), rg.WindowGeometry())

    def test_partial_record_keeps_valid_fields(self):
        self.path.write_text(json.dumps({"width": 500, "x": "left", "y": 40}), encoding="utf-8")
        geometry = self.store.load()
        self.assertEqual(geometry.width, 500)
        self.assertEqual(geometry.height, 800)
        self.assertIsNone(geometry.x)
        self.assertEqual(geometry.y, 40)

    def test_saved_bounds_are_loaded_back(self):
        self.store.save(rg.WindowGeometry(width=640, height=720, x=10, y=20))
        self.assertEqual(self.store.load(), rg.WindowGeometry(width=640, height=720, x=10, y=20))


class TestWindowStateStoreSave(unittest.TestCase):
    """Saving is write-through and tolerant of disk errors."""

    def test_position_omitted_when_unknown(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / rg.WINDOW_STATE_FILE
            rg.WindowStateStore(path).save(rg.WindowGeometry())
            self.assertEqual(json.loads(path.read_text(encoding="utf-8")), {"width": 420, "height": 800})

    def test_creates_missing_parent_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "profile" / rg.WINDOW_STATE_FILE
            rg.WindowStateStore(path).save(rg.WindowGeometry(width=300, height=300, x=0, y=0))
            self.assertTrue(path.exists())

    def test_write_failure_reported_once(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            # The target is a directory, so every write raises.
            store = rg.WindowStateStore(Path(tmpdir))
            with patch("sys.stderr", new_callable=io.StringIO) as stderr:
                store.save(rg.WindowGeometry())
                store.save(rg.WindowGeometry())
            self.assertEqual(stderr.getvalue().count("Failed to save window state"), 1)


class TestShellWindowGeometry(unittest.TestCase):
    """The main window restores bounds and writes them on every change."""

    @classmethod
    def setUpClass(cls):
        cls.app = get_app()

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.store = rg.WindowStateStore(Path(self._tmp.name) / rg.WINDOW_STATE_FILE)
        self.context = rg.AppContext(config=rg.AppConfig())
        self.window = rg.ShellWindow(self.context, self.store)

    def tearDown(self):
        self.context.quitting = True
        self.window.close()

    def test_restore_without_position_only_resizes(self):
        self.window.restore_geometry(rg.WindowGeometry(width=450, height=650))
        self.assertEqual((self.window.width(), self.window.height()), (450, 650))

    def test_restore_with_position_sets_full_geometry(self):
        self.window.restore_geometry(rg.WindowGeometry(width=400, height=500, x=30, y=40))
        geometry = self.window.current_geometry()
        self.assertEqual((geometry.x, geometry.y, geometry.width, geometry.height), (30, 40, 400, 500))

    def test_resize_is_written_through(self):
        self.window.show()
        self.window.resize(510, 560)
        self.assertTrue(wait_until(lambda: self.store.load().width == 510))
        self.assertEqual(self.store.load().height, 560)


if __name__ == "__main__":
    unittest.main()
