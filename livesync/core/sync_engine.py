"""
Main sync engine - owns the snapshots, watcher, collector and upload pool
"""
import queue
import threading
import time
from pathlib import Path, PurePosixPath
from typing import Optional, Protocol

from .. import config as _cfg
from ..config import SSHConfig
from ..errors import TransportError
from ..operations.scanner import list_remote
from ..utils.ignore_patterns import load_ignore_patterns
from ..utils.logging import log, vlog, warn
from .collector import EventCollector, SyncTrigger
from .diff import DiffEntry, DiffKind, compute_diff, jobs_for, summarize
from .snapshot import SnapshotStore
from .ssh_manager import SSHManager
from .uploader import PassResult, UploadScheduler
from .watcher import FileSystemWatcher


class RemoteTransport(Protocol):
    def connect(self) -> None: ...
    def disconnect(self) -> None: ...
    def exec(self, cmd: str, timeout: int = 60) -> tuple[str, str]: ...
    def begin_pass(self) -> None: ...
    def sync_file(self, job) -> None: ...


class Syncer:
    """
    One-way live mirror of *local_root* to *remote_root*.

        syncer = Syncer(local, remote, cfg.ssh_config())
        try:
            syncer.run()        # blocks until stop()
        finally:
            syncer.close()
    """

    def __init__(self, local_root: Path, remote_root: PurePosixPath,
                 ssh_cfg: Optional[SSHConfig] = None,
                 transport: Optional[RemoteTransport] = None,
                 workers: Optional[int] = None,
                 debounce_delay: Optional[float] = None,
                 max_delay: Optional[float] = None,
                 overflow_threshold: Optional[int] = None,
                 patterns: Optional[list] = None):
        if transport is None and ssh_cfg is None:
            raise ValueError("either ssh_cfg or transport is required")
        self.local_root = Path(local_root).expanduser().resolve()
        self.remote_root = PurePosixPath(remote_root)
        self.ssh_cfg = ssh_cfg
        self.transport = transport if transport is not None else SSHManager(ssh_cfg)

        self.local = SnapshotStore("local")
        self.remote = SnapshotStore("remote")
        self.events: queue.Queue = queue.Queue(maxsize=_cfg.EVENT_QUEUE_SIZE)
        self.trigger = SyncTrigger()

        if patterns is None:
            patterns = load_ignore_patterns(self.local_root)
        self.watcher = FileSystemWatcher(self.local_root, self.local, self.events, patterns)
        self.collector = EventCollector(self.events, self.trigger,
                                        debounce_delay=debounce_delay,
                                        max_delay=max_delay,
                                        overflow_threshold=overflow_threshold)
        self.scheduler = UploadScheduler(self.transport, workers=workers)

        self.passes = 0
        self.last_result: Optional[PassResult] = None
        self._stop = threading.Event()
        self._connected = False

    # ── setup ───────────────────────────────────────────────────────────────

    def init(self, watch: bool = True):
        """
        Connect, take the first remote snapshot and scan the local tree.
        Every failure here is fatal and propagates.
        """
        self.transport.connect()
        self._connected = True
        try:
            self.remote.replace(list_remote(self.transport, self.remote_root))
        except Exception as exc:
            raise TransportError(f"cannot list {self.remote_root}: {exc}") from exc
        log(f"[scan] {len(self.remote)} remote file(s) under {self.remote_root}")
        if watch:
            # notifications arriving during the scan are buffered, not lost
            self.watcher.start()
        self.watcher.initial_scan()

    # ── one pass ────────────────────────────────────────────────────────────

    def refresh_remote(self) -> bool:
        """
        Replace the remote snapshot with a fresh listing. On failure the
        previous snapshot is kept: a stale diff still makes progress.
        """
        try:
            files = list_remote(self.transport, self.remote_root)
        except Exception as exc:
            warn(f"[pass] remote listing failed, using previous snapshot: {exc}")
            return False
        self.remote.replace(files)
        return True

    def diff(self) -> list[DiffEntry]:
        return compute_diff(self.local, self.remote)

    def run_pass(self) -> PassResult:
        """Refresh remote → diff → upload. Returns after every job finished."""
        start = time.monotonic()
        self.passes += 1
        self.refresh_remote()
        diffs = self.diff()
        counts = summarize(diffs)
        if not diffs:
            vlog(f"[pass] #{self.passes}: nothing to do, in sync ✓")
            self.last_result = PassResult(elapsed=time.monotonic() - start)
            return self.last_result

        log(f"[pass] #{self.passes}: missing={counts[DiffKind.MISSING_REMOTE]}  "
            f"different={counts[DiffKind.DIFFERENT]}")
        self.transport.begin_pass()
        result = self.scheduler.run(jobs_for(diffs, self.local_root, self.remote_root))
        result.elapsed = time.monotonic() - start
        log(f"[pass] #{self.passes}: pushed {result.uploaded}/{result.jobs}"
            + (f", {result.failed} failed" if result.failed else "")
            + f" in {result.elapsed:.2f}s")
        self.last_result = result
        return result

    # ── entry points ────────────────────────────────────────────────────────

    def run(self):
        """Watch and sync until stop() is called."""
        log(f"[sync] {self.local_root} → {self.remote_root}")
        self.init(watch=True)
        self.collector.start()
        self.watcher.scan_complete.wait()
        self.trigger.fire()
        while not self._stop.is_set():
            if not self.trigger.wait(timeout=0.5):
                continue
            if self._stop.is_set():
                break
            self.run_pass()

    def sync_once(self) -> PassResult:
        """Scan, list and push once, without watching."""
        self.init(watch=False)
        return self.run_pass()

    def pending(self) -> list[DiffEntry]:
        """What the next pass would push, without pushing it."""
        self.init(watch=False)
        return self.diff()

    def stop(self):
        self._stop.set()
        self.trigger.fire()

    def close(self):
        self.stop()
        self.collector.stop()
        self.watcher.stop()
        if self._connected:
            self.transport.disconnect()
            self._connected = False
