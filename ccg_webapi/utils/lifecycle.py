"""Process lifecycle: graceful shutdown callbacks."""

from __future__ import annotations

import atexit
import logging
import os
import signal
import threading
from types import FrameType
from typing import Callable, List, Tuple

from flask import Flask

ShutdownCallback = Callable[[], None]


class ShutdownRegistry:
    """Callbacks executed exactly once when the process stops."""

    def __init__(self) -> None:
        self._callbacks: List[Tuple[str, ShutdownCallback]] = []
        self._lock = threading.Lock()
        self._fired = False

    def add(self, name: str, callback: ShutdownCallback) -> None:
        with self._lock:
            self._callbacks.append((name, callback))

    @property
    def fired(self) -> bool:
        return self._fired

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(name for name, _ in self._callbacks)

    def fire(self, *, logger: logging.Logger | None = None) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
            callbacks = list(self._callbacks)
        # Reverse registration order, so resources close before their owners.
        for name, callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                if logger is not None:
                    logger.exception("Shutdown callback %s failed", name)


def register_shutdown_task(app: Flask, name: str, callback: ShutdownCallback) -> None:
    """Register ``callback`` on the shutdown registry owned by ``app``."""

    app.extensions["shutdown_registry"].add(name, callback)


def install_shutdown_handlers(app: Flask, *, install_signals: bool = True) -> ShutdownRegistry:
    """Create the app's shutdown registry and hook it to SIGTERM/SIGINT and exit."""

    registry = ShutdownRegistry()
    app.extensions["shutdown_registry"] = registry
    atexit.register(registry.fire, logger=app.logger)
    if not install_signals:
        return registry

    previous_handlers: dict[int, object] = {}

    def _handler(signum: int, frame: FrameType | None) -> None:  # pragma: no cover - signal path
        app.logger.info("Received shutdown signal", extra={"signal": signal.Signals(signum).name})
        registry.fire(logger=app.logger)
        previous = previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            previous_handlers[sig] = signal.getsignal(sig)
            signal.signal(sig, _handler)
        except ValueError:  # pragma: no cover - not in main thread
            app.logger.debug("Unable to install handler for %s outside the main thread", sig)
    return registry
