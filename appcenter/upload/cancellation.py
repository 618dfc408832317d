"""
Cancellation token shared by the components of one upload run.
"""

import logging
import threading
from typing import Callable, List

from .exceptions import UploadCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag that interrupts waits and in-flight calls"""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason = "Upload cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Upload cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)

        logger.info(f"Cancellation requested: {reason}")
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel, or immediately if already cancelled"""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise UploadCancelledError(self.reason)

    def wait(self, seconds: float) -> None:
        """Sleep for seconds, raising UploadCancelledError as soon as cancelled"""
        if self._event.wait(timeout=max(seconds, 0)):
            raise UploadCancelledError(self.reason)
