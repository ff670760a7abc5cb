"""
Event collection: turns a bursty stream of WatchEvents into sync triggers
"""
import queue
import threading
import time
from typing import Callable, Optional

from .. import config as _cfg
from ..utils.logging import vlog
from .watcher import WatchEvent


class SyncTrigger:
    """
    Single-slot mailbox. fire() never blocks and never queues a second
    request: if a trigger is already waiting, the new one is redundant.
    """

    def __init__(self):
        self._slot: "queue.Queue[bool]" = queue.Queue(maxsize=1)

    def fire(self) -> bool:
        """Post a trigger; returns False if one was already pending."""
        try:
            self._slot.put_nowait(True)
            return True
        except queue.Full:
            return False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Consume the pending trigger, waiting up to *timeout* seconds."""
        try:
            self._slot.get(timeout=timeout)
            return True
        except queue.Empty:
            return False

    @property
    def pending(self) -> bool:
        return not self._slot.empty()


_STOP = object()


class EventCollector:
    """
    Consumes WatchEvents on its own thread and fires *trigger* when:
      - the pending set has been quiet for debounce_delay seconds, or
      - max_delay seconds have passed since the first pending event, or
      - more than overflow_threshold distinct paths are pending.

    The pending set, countdown and window start are only touched by the
    collector thread.
    """

    def __init__(self, events: "queue.Queue", trigger: SyncTrigger,
                 debounce_delay: Optional[float] = None,
                 max_delay: Optional[float] = None,
                 overflow_threshold: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.events = events
        self.trigger = trigger
        self.debounce_delay = _cfg.DEBOUNCE_DELAY if debounce_delay is None else debounce_delay
        self.max_delay = _cfg.MAX_DELAY if max_delay is None else max_delay
        self.overflow_threshold = _cfg.OVERFLOW_THRESHOLD if overflow_threshold is None else overflow_threshold
        self._clock = clock

        self.fired = 0
        self._pending: set[str] = set()
        self._deadline: Optional[float] = None
        self._window_start = clock()
        self._thread: Optional[threading.Thread] = None

    # ── lifecycle ───────────────────────────────────────────────────────────

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name="livesync-collector", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        if self._thread is None:
            return
        self.events.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None

    # ── loop ────────────────────────────────────────────────────────────────

    def run(self):
        while True:
            timeout = None
            if self._deadline is not None:
                timeout = max(0.0, self._deadline - self._clock())
            try:
                item = self.events.get(timeout=timeout)
            except queue.Empty:
                self.on_countdown_expired()
                continue
            if item is _STOP:
                return
            self.on_event(item)

    def on_event(self, event: WatchEvent):
        now = self._clock()
        if not self._pending:
            # the max-delay window runs from the first event pending since the last
            # trigger, not from the trigger itself; an idle spell never skips the debounce
            self._window_start = now
        self._pending.add(event.path)
        self._deadline = now + self.debounce_delay

        if len(self._pending) > self.overflow_threshold:
            self._fire(f"{len(self._pending)} paths pending (overflow)")
            return

        if now - self._window_start > self.max_delay:
            self._fire(f"max delay {self.max_delay:g}s reached")

    def on_countdown_expired(self):
        self._deadline = None
        if self._pending:
            self._fire(f"quiet for {self.debounce_delay:g}s")

    def _fire(self, reason: str):
        count = len(self._pending)
        self._pending.clear()
        self._deadline = None
        self._window_start = self._clock()
        self.fired += 1
        posted = self.trigger.fire()
        vlog(f"[collect] trigger ({reason}, {count} path(s))"
             + ("" if posted else ", pass already pending"))

    @property
    def pending_count(self) -> int:
        return len(self._pending)
