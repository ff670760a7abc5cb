"""
Local tree watcher: initial scan + live watchdog notifications

The watcher is the only writer of the local snapshot. Every notification
that changes a file's metadata updates the snapshot and puts one WatchEvent
on the raw event queue; removals update the snapshot silently.
"""
import os
import queue
import stat
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .. import config as _cfg
from ..errors import ScanError, WatcherError
from ..utils.file_utils import is_syncable, relative_posix
from ..utils.ignore_patterns import is_ignored
from ..utils.logging import log, vlog, warn
from .snapshot import FileInfo, SnapshotStore


@dataclass(frozen=True)
class WatchEvent:
    """A local file whose snapshot entry was just inserted or updated."""
    path: str
    kind: str
    timestamp: float = field(default_factory=time.monotonic)


def _decode(path) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class _TreeEventHandler(FileSystemEventHandler):
    """Forwards watchdog callbacks (observer thread) to the watcher."""

    def __init__(self, watcher: "FileSystemWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent):
        path = _decode(event.src_path)
        if event.is_directory:
            self._watcher.handle_new_directory(path)
        else:
            self._watcher.handle_file_change(path, "created")

    def on_modified(self, event: FileSystemEvent):
        # directory mtime bumps carry no information we need
        if not event.is_directory:
            self._watcher.handle_file_change(_decode(event.src_path), "modified")

    def on_closed(self, event: FileSystemEvent):
        if not event.is_directory:
            self._watcher.handle_file_change(_decode(event.src_path), "closed")

    def on_deleted(self, event: FileSystemEvent):
        self._watcher.handle_removal(_decode(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        self._watcher.handle_removal(_decode(event.src_path))
        dest = _decode(event.dest_path)
        if event.is_directory:
            self._watcher.handle_new_directory(dest)
        else:
            self._watcher.handle_file_change(dest, "moved")


class FileSystemWatcher:
    """
    Keeps *store* in sync with the tree under *root*.

    Usage:
        w = FileSystemWatcher(root, store, events)
        w.start()           # observer running, notifications buffered
        w.initial_scan()    # populates store, sets scan_complete
        ...
        w.stop()
    """

    def __init__(self, root: Path, store: SnapshotStore,
                 events: "queue.Queue[WatchEvent]",
                 patterns: Optional[list] = None):
        self.root = Path(root).resolve()
        self.store = store
        self.events = events
        self.patterns = patterns or []
        self.scan_complete = threading.Event()

        self._watched: set[str] = set()
        self._watched_lock = threading.Lock()
        self._observer: Optional[Observer] = None

    # ── watch set ───────────────────────────────────────────────────────────

    @property
    def watched_dirs(self) -> set[str]:
        with self._watched_lock:
            return set(self._watched)

    def _watch_dir(self, rel: str):
        with self._watched_lock:
            self._watched.add(rel)

    def _unwatch_tree(self, rel: str):
        prefix = rel + "/"
        with self._watched_lock:
            self._watched = {d for d in self._watched if d != rel and not d.startswith(prefix)}

    # ── lifecycle ───────────────────────────────────────────────────────────

    def start(self):
        """Start delivering notifications. Failure here is fatal."""
        if self._observer is not None:
            return
        if not self.root.is_dir():
            raise WatcherError(f"local path is not a directory: {self.root}")
        observer = Observer()
        try:
            observer.schedule(_TreeEventHandler(self), str(self.root), recursive=True)
            observer.start()
        except OSError as exc:
            raise WatcherError(f"cannot watch {self.root}: {exc}") from exc
        self._observer = observer
        log(f"[watch] watching {self.root}")

    def stop(self):
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None

    def initial_scan(self) -> int:
        """Walk the whole tree into the snapshot, then set scan_complete."""
        log(f"[scan] scanning {self.root} …")
        self._watch_dir("")
        found = self._scan_tree(self.root, emit=False)
        self.scan_complete.set()
        log(f"[scan] {found} local file(s), {len(self.watched_dirs)} director(ies)")
        return found

    # ── scanning ────────────────────────────────────────────────────────────

    def _skip(self, rel: str) -> bool:
        if not rel or rel.startswith("../"):
            return True
        if rel == _cfg.PROJECT_FILE:
            return True
        return is_ignored(rel, self.patterns)

    def _scan_tree(self, top: Path, emit: bool) -> int:
        """
        Register every directory below *top* and record every file.
        Raises ScanError if a directory cannot be listed.
        """
        found = 0
        stack = [os.fspath(top)]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except FileNotFoundError:
                # removed while we were walking; the delete notification handles it
                continue
            except OSError as exc:
                raise ScanError(f"cannot scan {current}: {exc}") from exc

            for entry in entries:
                rel = relative_posix(self.root, entry.path)
                if self._skip(rel):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        self._watch_dir(rel)
                        stack.append(entry.path)
                        continue
                    st = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    continue
                if not is_syncable(st):
                    continue
                self.store.set(rel, FileInfo.from_stat(st))
                found += 1
                if emit:
                    self._emit(rel, "scanned")
        return found

    def _emit(self, rel: str, kind: str):
        # blocks when the collector falls behind
        self.events.put(WatchEvent(rel, kind))

    # ── notification handling (observer thread) ────────────────────────────

    def handle_file_change(self, path: str, kind: str):
        rel = relative_posix(self.root, path)
        if self._skip(rel):
            return
        try:
            st = os.lstat(path)
        except OSError as exc:
            vlog(f"[watch] stat failed for {rel}: {exc}")
            return
        if stat.S_ISDIR(st.st_mode):
            return
        if not is_syncable(st):
            return
        self.store.set(rel, FileInfo.from_stat(st))
        vlog(f"[watch] {kind}: {rel}")
        self._emit(rel, kind)

    def handle_new_directory(self, path: str):
        rel = relative_posix(self.root, path)
        if self._skip(rel) or not os.path.isdir(path):
            return
        self._watch_dir(rel)
        vlog(f"[watch] new directory: {rel}")
        try:
            self._scan_tree(Path(path), emit=True)
        except ScanError as exc:
            warn(f"[watch] {exc}")

    def handle_removal(self, path: str):
        rel = relative_posix(self.root, path)
        if not rel or rel.startswith("../"):
            return
        if os.path.lexists(path):
            return
        self._unwatch_tree(rel)
        dropped = self.store.remove_tree(rel)
        if dropped:
            vlog(f"[watch] removed: {rel} ({dropped} entr{'y' if dropped == 1 else 'ies'})")
