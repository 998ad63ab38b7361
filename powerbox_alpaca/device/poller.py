"""
Periodic status refresh.
"""

import logging
import threading
from typing import Optional

from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.utils.exceptions import DriverError, NotConnectedError


logger = logging.getLogger(__name__)


class StatusPoller:
    """
    Background thread that refreshes the power box at a fixed interval.

    Refresh failures are logged and the next tick tries again; the table
    keeps its last good values in between.
    """

    def __init__(self, powerbox: PowerBox, interval_seconds: float = 2.0):
        self._powerbox = powerbox
        self._interval = interval_seconds
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def start(self) -> None:
        if self.running:
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="status-poller", daemon=True)
        self._thread.start()
        logger.info(f"Status polling started (every {self._interval}s)")

    def stop(self) -> None:
        if not self._thread:
            return

        self._stop.set()
        self._thread.join(timeout=5.0)
        self._thread = None
        logger.info("Status polling stopped")

    def poll_once(self) -> bool:
        """
        Run one refresh.

        Returns:
            True if the refresh succeeded, False if it was skipped or failed.
        """
        if not self._powerbox.connected:
            return False

        try:
            self._powerbox.refresh()
        except NotConnectedError:
            return False
        except DriverError as e:
            self._consecutive_failures += 1
            logger.warning(f"Status refresh failed ({self._consecutive_failures} in a row): {e}")
            return False

        if self._consecutive_failures:
            logger.info(f"Status refresh recovered after {self._consecutive_failures} failures")
        self._consecutive_failures = 0
        return True

    def _run(self) -> None:
        logger.debug("Polling thread started")
        while not self._stop.wait(self._interval):
            self.poll_once()
        logger.debug("Polling thread stopped")
