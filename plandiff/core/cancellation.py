"""Cooperative cancellation for analysis runs."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from .exceptions import AnalysisCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Pollable stop flag shared between a caller and one analysis run.

    Safe to cancel from another thread (e.g. a UI thread) while the run is
    awaiting on its event loop. In-flight calls are never interrupted; the
    run stops at its next checkpoint.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.info(f"Cancellation requested: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self, checkpoint: str = "") -> None:
        if self._event.is_set():
            where = f" at {checkpoint}" if checkpoint else ""
            raise AnalysisCancelled(f"Analysis cancelled{where}: {self._reason}")


def check_cancelled(token: Optional[CancellationToken], checkpoint: str = "") -> None:
    """Raise AnalysisCancelled if ``token`` is set. A missing token never cancels."""
    if token is not None:
        token.raise_if_cancelled(checkpoint)
