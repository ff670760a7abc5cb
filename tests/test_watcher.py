"""
Tests for the local tree watcher: initial scan, notification handling and
live watching through watchdog.
"""
import os
import queue
import tempfile
import time
import unittest
from pathlib import Path

from livesync.core.collector import EventCollector, SyncTrigger
from livesync.core.snapshot import FileInfo, SnapshotStore
from livesync.core.watcher import FileSystemWatcher
from livesync.errors import ScanError, WatcherError
from livesync.utils.ignore_patterns import compile_patterns


def _write(path: Path, data: bytes = b"", mtime=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))


def _drain(q: queue.Queue) -> list:
    items = []
    while True:
        try:
            items.append(q.get_nowait())
        except queue.Empty:
            return items


def _wait_for(predicate, timeout=5.0, interval=0.05):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class WatcherTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name).resolve()
        self.store = SnapshotStore("local")
        self.events = queue.Queue()

    def tearDown(self):
        self.tmpdir.cleanup()

    def make_watcher(self, patterns=None):
        return FileSystemWatcher(self.root, self.store, self.events, patterns)


class TestInitialScan(WatcherTestCase):

    def test_scan_records_files_and_directories(self):
        _write(self.root / "a.txt", b"x" * 100, mtime=1700000000)
        _write(self.root / "src" / "pkg" / "mod.py", b"print()\n", mtime=1700000100)
        (self.root / "empty").mkdir()

        w = self.make_watcher()
        self.assertFalse(w.scan_complete.is_set())
        found = w.initial_scan()

        self.assertEqual(found, 2)
        self.assertTrue(w.scan_complete.is_set())
        self.assertEqual(self.store.get("a.txt"), FileInfo(100, 1700000000))
        self.assertEqual(self.store.get("src/pkg/mod.py"), FileInfo(8, 1700000100))
        self.assertEqual(w.watched_dirs, {"", "src", "src/pkg", "empty"})
        # the initial scan is silent
        self.assertEqual(_drain(self.events), [])

    def test_scan_records_symlinks_without_following(self):
        _write(self.root / "real.txt", b"12345")
        os.symlink("real.txt", self.root / "link.txt")
        self.make_watcher().initial_scan()
        self.assertEqual(self.store.get("link.txt").size, len("real.txt"))
        self.assertEqual(self.store.get("real.txt").size, 5)

    def test_scan_honours_ignore_patterns(self):
        _write(self.root / "keep.py", b"k")
        _write(self.root / "node_modules" / "dep" / "index.js", b"d")
        _write(self.root / "debug.log", b"l")
        w = self.make_watcher(compile_patterns(["**/node_modules/**", "*.log"]))
        w.initial_scan()
        self.assertEqual(sorted(self.store.copy()), ["keep.py"])

    def test_scan_skips_project_file(self):
        _write(self.root / ".livesync", b"profiles: []\n")
        _write(self.root / "a", b"a")
        self.make_watcher().initial_scan()
        self.assertEqual(sorted(self.store.copy()), ["a"])

    @unittest.skipIf(os.name == "nt" or os.geteuid() == 0, "permissions not enforced")
    def test_unreadable_directory_is_a_scan_failure(self):
        locked = self.root / "locked"
        locked.mkdir()
        _write(locked / "secret", b"s")
        locked.chmod(0)
        try:
            with self.assertRaises(ScanError):
                self.make_watcher().initial_scan()
        finally:
            locked.chmod(0o755)


class TestNotificationHandling(WatcherTestCase):

    def test_file_change_updates_snapshot_and_emits(self):
        w = self.make_watcher()
        w.initial_scan()
        _write(self.root / "new.txt", b"hello", mtime=1700000200)
        w.handle_file_change(str(self.root / "new.txt"), "created")

        self.assertEqual(self.store.get("new.txt"), FileInfo(5, 1700000200))
        events = _drain(self.events)
        self.assertEqual([(e.path, e.kind) for e in events], [("new.txt", "created")])

    def test_stat_failure_is_dropped(self):
        w = self.make_watcher()
        w.handle_file_change(str(self.root / "vanished.txt"), "modified")
        self.assertNotIn("vanished.txt", self.store)
        self.assertEqual(_drain(self.events), [])

    def test_new_directory_is_scanned_and_watched(self):
        w = self.make_watcher()
        w.initial_scan()
        _write(self.root / "fresh" / "deep" / "one.txt", b"1")
        _write(self.root / "fresh" / "two.txt", b"22")
        w.handle_new_directory(str(self.root / "fresh"))

        self.assertEqual(self.store.get("fresh/two.txt").size, 2)
        self.assertEqual(self.store.get("fresh/deep/one.txt").size, 1)
        self.assertIn("fresh/deep", w.watched_dirs)
        paths = sorted(e.path for e in _drain(self.events))
        self.assertEqual(paths, ["fresh/deep/one.txt", "fresh/two.txt"])

    def test_removed_directory_drops_entries_silently(self):
        _write(self.root / "gone" / "a.txt", b"a")
        _write(self.root / "gone" / "sub" / "b.txt", b"b")
        _write(self.root / "stay.txt", b"s")
        w = self.make_watcher()
        w.initial_scan()

        for p in (self.root / "gone" / "sub" / "b.txt", self.root / "gone" / "a.txt"):
            p.unlink()
        (self.root / "gone" / "sub").rmdir()
        (self.root / "gone").rmdir()
        w.handle_removal(str(self.root / "gone"))

        self.assertEqual(sorted(self.store.copy()), ["stay.txt"])
        self.assertNotIn("gone", w.watched_dirs)
        self.assertNotIn("gone/sub", w.watched_dirs)
        self.assertEqual(_drain(self.events), [])

    def test_removal_of_existing_path_is_ignored(self):
        _write(self.root / "still-here.txt", b"x")
        w = self.make_watcher()
        w.initial_scan()
        w.handle_removal(str(self.root / "still-here.txt"))
        self.assertIn("still-here.txt", self.store)

    def test_paths_outside_root_are_ignored(self):
        w = self.make_watcher()
        with tempfile.NamedTemporaryFile() as outside:
            w.handle_file_change(outside.name, "modified")
        self.assertEqual(len(self.store), 0)


class TestLiveWatching(WatcherTestCase):

    def test_start_on_missing_directory_is_fatal(self):
        w = FileSystemWatcher(self.root / "nope", self.store, self.events)
        with self.assertRaises(WatcherError):
            w.start()

    def test_new_subdirectory_with_file_gives_one_trigger(self):
        trigger = SyncTrigger()
        collector = EventCollector(self.events, trigger, debounce_delay=0.3,
                                   max_delay=10.0, overflow_threshold=1000)
        w = self.make_watcher()
        w.start()
        try:
            w.initial_scan()
            collector.start()

            sub = self.root / "newdir"
            sub.mkdir()
            (sub / "file.txt").write_bytes(b"payload")

            self.assertTrue(trigger.wait(timeout=5.0), "no trigger after debounce")
            time.sleep(0.6)
            self.assertEqual(collector.fired, 1)
            self.assertTrue(_wait_for(lambda: self.store.get("newdir/file.txt") == FileInfo(
                7, int((sub / "file.txt").stat().st_mtime))))
            self.assertIn("newdir", w.watched_dirs)
        finally:
            collector.stop()
            w.stop()

    def test_modification_and_deletion_are_tracked(self):
        _write(self.root / "doc.md", b"v1")
        w = self.make_watcher()
        w.start()
        try:
            w.initial_scan()
            (self.root / "doc.md").write_bytes(b"version 2")
            self.assertTrue(_wait_for(lambda: (self.store.get("doc.md") or FileInfo()).size == 9))
            (self.root / "doc.md").unlink()
            self.assertTrue(_wait_for(lambda: "doc.md" not in self.store))
        finally:
            w.stop()


if __name__ == "__main__":
    unittest.main()
