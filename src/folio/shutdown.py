"""Run the application's teardown exactly once, however it is triggered."""

from __future__ import annotations

import atexit
import logging
import signal
import threading
from typing import Callable, Dict, Iterable

LOGGER = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownController:
    """Owns the teardown routine and the flag that keeps it from running twice.

    ``install()`` hooks termination signals and interpreter exit. After the
    teardown, a signal is passed on to whatever handler was installed before,
    or ends the process with ``128 + signum`` when there was none.
    """

    def __init__(self, teardown: Callable[[], None]) -> None:
        self._teardown = teardown
        self._lock = threading.Lock()
        self._has_run = False
        self._previous: Dict[int, object] = {}

    @property
    def has_run(self) -> bool:
        return self._has_run

    def run(self) -> bool:
        """Run the teardown unless it already ran; returns whether it ran now."""
        with self._lock:
            if self._has_run:
                LOGGER.debug("Shutdown already completed")
                return False
            self._has_run = True
        LOGGER.info("Shutting down")
        try:
            self._teardown()
        except Exception:
            LOGGER.exception("Error during shutdown")
        return True

    def install(self, signals: Iterable[int] = DEFAULT_SIGNALS) -> None:
        """Register for ``signals`` and ``atexit``; must be called from the main thread."""
        for signum in signals:
            self._previous[signum] = signal.signal(signum, self._handle_signal)
        atexit.register(self.run)

    def uninstall(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()
        atexit.unregister(self.run)

    def _handle_signal(self, signum: int, frame) -> None:
        LOGGER.info("Received signal %s", signal.Signals(signum).name)
        self.run()
        previous = self._previous.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous != signal.SIG_IGN:
            raise SystemExit(128 + signum)
