"""Cooperative stop for a seed session (signals or a stop file)."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class StopToken:
    """
    Tripped once by SIGINT/SIGTERM, by ``request_stop()`` or by the stop file
    appearing on disk.

    The session polls `should_stop()` before starting each seed. Tripping the
    token never interrupts a simulation that is already running.
    """

    def __init__(
        self,
        stop_file: Optional[Path] = None,
        enable_signals: bool = True,
        on_stop: Optional[Callable[[], None]] = None,
    ) -> None:
        self.stop_file = stop_file
        self._on_stop = on_stop
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._prev_handlers: Dict[int, Callable] = {}
        if enable_signals:
            self._install_signal_handlers()

    @property
    def reason(self) -> Optional[str]:
        """What tripped the token, or None while it is armed."""
        with self._lock:
            return self._reason

    def _install_signal_handlers(self) -> None:
        for sig in _STOP_SIGNALS:
            try:
                previous = signal.signal(sig, self._handle_signal)
            except (ValueError, OSError):
                # Not on the main thread, or the platform lacks the signal.
                continue
            if previous is not None:
                self._prev_handlers[sig] = previous

    def _handle_signal(self, signum: int, frame) -> None:
        name = signal.Signals(signum).name
        logger.warning("Received %s; no new seeds will be started", name)
        self.request_stop(reason=name)

    def request_stop(self, reason: str = "requested") -> None:
        """Trip the token; only the first call records a reason and fires on_stop."""
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason
            self._event.set()
        if self._on_stop is None:
            return
        try:
            self._on_stop()
        except Exception:
            logger.debug("Stop callback failed", exc_info=True)

    def should_stop(self) -> bool:
        if self._event.is_set():
            return True
        if self.stop_file is not None and self.stop_file.exists():
            logger.info("Stop file %s detected", self.stop_file)
            self.request_stop(reason=f"stop file {self.stop_file}")
            return True
        return False

    def restore(self) -> None:
        """Put back the signal handlers that were active before this token."""
        while self._prev_handlers:
            sig, handler = self._prev_handlers.popitem()
            try:
                signal.signal(sig, handler)
            except (ValueError, OSError):
                logger.debug("Cannot restore handler for signal %s", sig)

    def __enter__(self) -> "StopToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
