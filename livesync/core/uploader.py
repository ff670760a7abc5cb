"""
Upload scheduler: fans one pass's jobs out over a fixed pool of threads
"""
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from .. import config as _cfg
from ..utils.logging import warn
from .diff import SyncJob


class Transport(Protocol):
    def sync_file(self, job: SyncJob) -> None: ...


@dataclass
class PassResult:
    jobs: int = 0
    uploaded: int = 0
    failed: int = 0
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failed == 0


_DONE = None


class UploadScheduler:
    """
    Runs every job of a pass through *transport*.sync_file on `workers`
    threads fed from a bounded queue, and returns once the queue is drained
    and every worker has exited. A failing job is logged and counted; it
    never stops its siblings.
    """

    def __init__(self, transport: Transport, workers: Optional[int] = None,
                 queue_size: Optional[int] = None):
        self.transport = transport
        self.workers = max(1, workers if workers is not None else _cfg.WORKER_COUNT)
        self.queue_size = max(1, queue_size if queue_size is not None else _cfg.JOB_QUEUE_SIZE)
        self._lock = threading.Lock()
        self._result = PassResult()

    def _record(self, ok: bool):
        with self._lock:
            if ok:
                self._result.uploaded += 1
            else:
                self._result.failed += 1

    def _worker(self, jobs: "queue.Queue[Optional[SyncJob]]"):
        while True:
            job = jobs.get()
            if job is _DONE:
                return
            try:
                self.transport.sync_file(job)
            except Exception as exc:
                warn(f"  [PUSH ✗] {job.rel_path}: {exc}")
                self._record(False)
            else:
                self._record(True)

    def run(self, jobs: list[SyncJob]) -> PassResult:
        start = time.monotonic()
        self._result = PassResult(jobs=len(jobs))
        if not jobs:
            return self._result

        q: "queue.Queue[Optional[SyncJob]]" = queue.Queue(maxsize=self.queue_size)
        threads = [
            threading.Thread(target=self._worker, args=(q,), name=f"livesync-worker-{i}", daemon=True)
            for i in range(min(self.workers, len(jobs)))
        ]
        for t in threads:
            t.start()

        for job in jobs:
            q.put(job)
        # one end marker per worker closes the queue
        for _ in threads:
            q.put(_DONE)
        for t in threads:
            t.join()

        self._result.elapsed = time.monotonic() - start
        return self._result
