"""
Watchdog that warns when a transfer stops making visible progress.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class TransferWatchdog:
    """Track the last transfer activity and log a warning when it goes quiet.

    The upload engine touches the watchdog after every network round trip.
    A background thread checks the idle time; it never interrupts the
    transfer, which relies on the transport timeout for hung calls.
    """

    logger: logging.Logger
    warning_seconds: float = 300.0
    check_interval_seconds: float = 15.0
    _last_touch: float = field(default_factory=time.monotonic, init=False, repr=False)
    _last_note: str = field(default="", init=False, repr=False)
    _last_warning_at: float = field(default=0.0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False, repr=False)

    def touch(self, note: str = "") -> None:
        with self._lock:
            self._last_touch = time.monotonic()
            if note:
                self._last_note = note

    def snapshot(self) -> tuple[float, str]:
        with self._lock:
            return self._last_touch, self._last_note

    def start(self) -> None:
        if self._thread is not None or self.warning_seconds <= 0:
            return
        self._stop_event.clear()
        self.touch("start")
        self._thread = threading.Thread(target=self._run, name="transfer-watchdog", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=self.check_interval_seconds + 5)
        self._thread = None

    def __enter__(self) -> "TransferWatchdog":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def check(self) -> bool:
        """Log a warning if idle past the threshold. Returns True when a warning was emitted."""
        last_touch, note = self.snapshot()
        now = time.monotonic()
        idle_for = now - last_touch
        if idle_for < self.warning_seconds:
            return False
        if self._last_warning_at and (now - self._last_warning_at) < self.warning_seconds:
            return False
        self._last_warning_at = now
        self.logger.warning(
            "No upload activity for %.0fs. Last activity: %s",
            idle_for,
            note or "n/a",
        )
        return True

    def _run(self) -> None:
        while not self._stop_event.wait(self.check_interval_seconds):
            self.check()
