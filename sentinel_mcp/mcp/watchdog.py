"""
Parent-process watchdog.

MCP clients launch the server as a child process over stdio. If the client
dies without closing the pipe, the server would linger; this watchdog exits
the process once the original parent is gone.
"""

from __future__ import annotations

import os
import threading
from typing import Callable, Optional

from ..core.logging import get_logger


logger = get_logger("sentinel_mcp.mcp.watchdog")

WATCHDOG_INTERVAL_SECONDS = 5.0


def parent_alive(pid: int) -> bool:
    """Signal 0 checks for existence without delivering a signal."""
    if pid <= 1:
        # Re-parented to init: the original parent has already exited.
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user.
        return True
    return True


class ParentWatchdog:
    """
    Daemon thread that calls ``on_orphaned`` when the parent process exits.
    """

    def __init__(
        self,
        parent_pid: Optional[int] = None,
        interval_seconds: float = WATCHDOG_INTERVAL_SECONDS,
        on_orphaned: Optional[Callable[[], None]] = None,
        is_alive: Callable[[int], bool] = parent_alive,
    ) -> None:
        self.parent_pid = parent_pid if parent_pid is not None else os.getppid()
        self.interval_seconds = interval_seconds
        self._on_orphaned = on_orphaned or (lambda: os._exit(0))
        self._is_alive = is_alive
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def check_once(self) -> bool:
        """
        Return True while the parent is alive; otherwise fire ``on_orphaned``.
        """
        if self._is_alive(self.parent_pid):
            return True
        logger.warning(f"Parent process {self.parent_pid} is gone, shutting down")
        self._on_orphaned()
        return False

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            if not self.check_once():
                return

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="parent-watchdog", daemon=True)
        self._thread.start()
        logger.debug(f"Parent watchdog started for pid {self.parent_pid}")

    def stop(self) -> None:
        self._stop.set()
