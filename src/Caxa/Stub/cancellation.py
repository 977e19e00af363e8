"""Cooperative cancellation primitive shared by background runtime tasks.

The progress indicator and the extraction worker pool both run alongside the
thread that owns them.  Neither is interrupted; instead they check a
:class:`CancellationToken` and stop on their own, which keeps cleanup ordering
predictable.
"""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """Flag that background threads poll, or block on, to learn they should stop.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.wait(0)
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Request that every holder of this token stops."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return ``True`` once :meth:`cancel` has been called."""
        return self._is_cancelled.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds for cancellation.

        Returns:
            True if cancellation was requested, False if the timeout elapsed.
        """
        return self._is_cancelled.wait(timeout)
