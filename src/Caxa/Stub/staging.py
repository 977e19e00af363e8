# === NAVMAP v1 ===
# {
#   "module": "Caxa.Stub.staging",
#   "purpose": "Cross-process staging protocol for the extracted application",
#   "sections": [
#     {
#       "id": "staginglocation",
#       "name": "StagingLocation",
#       "anchor": "class-staginglocation",
#       "kind": "class"
#     },
#     {
#       "id": "progressindicator",
#       "name": "ProgressIndicator",
#       "anchor": "class-progressindicator",
#       "kind": "class"
#     },
#     {
#       "id": "prepare-application",
#       "name": "prepare_application",
#       "anchor": "function-prepare-application",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Decide where the application lives on disk and extract it when needed.

Concurrent launches of the same artifact coordinate only through directories
under the base cache directory::

    <base>/apps/<identifier>/<attempt>/    extracted application
    <base>/locks/<identifier>/<attempt>/   present while extraction runs

A slot whose application directory exists without a lock is complete and is
reused as-is.  A slot that is locked belongs to someone else (or was abandoned
mid-way) and is skipped; the protocol never waits on another process.  Lock
creation is not an exclusive claim, so two processes racing on a fresh slot can
both extract into it.  The payload is deterministic, so the result is the same.
"""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TextIO

from .artifact import StubConfig
from .cancellation import CancellationToken
from .errors import StagingFailure
from .io import extract_payload, remove_tree
from .logging_utils import get_logger

__all__ = [
    "PROGRESS_INTERVAL",
    "PROGRESS_MARKER",
    "ProgressIndicator",
    "StagingLocation",
    "prepare_application",
    "staging_location",
]

PROGRESS_INTERVAL = 2.0
PROGRESS_MARKER = "."

Extractor = Callable[[bytes, Path], object]


@dataclass(frozen=True)
class StagingLocation:
    """Application and lock directories for one ``(identifier, attempt)`` slot."""

    app_dir: Path
    lock_dir: Path
    attempt: int


def staging_location(base_dir: Path, identifier: str, attempt: int) -> StagingLocation:
    """Return the slot paths for ``identifier`` at ``attempt`` under ``base_dir``."""

    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    parts = identifier.replace("\\", "/").split("/")
    return StagingLocation(
        app_dir=base_dir.joinpath("apps", *parts, str(attempt)),
        lock_dir=base_dir.joinpath("locks", *parts, str(attempt)),
        attempt=attempt,
    )


class ProgressIndicator:
    """Print a message, then a marker at a fixed cadence until stopped.

    The indicator writes to ``stream`` from a daemon thread.  :meth:`stop`
    signals the thread, waits for it to exit and terminates the line, so no
    output is produced after it returns.
    """

    def __init__(
        self,
        message: str,
        *,
        stream: Optional[TextIO] = None,
        interval: float = PROGRESS_INTERVAL,
        marker: str = PROGRESS_MARKER,
    ) -> None:
        self.message = message
        self.stream = stream if stream is not None else sys.stderr
        self.interval = interval
        self.marker = marker
        self._token = CancellationToken()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._write(self.message)
        self._thread = threading.Thread(
            target=self._run, name="caxa-progress", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._token.cancel()
        self._thread.join()
        self._thread = None
        self._write("\n")

    def _run(self) -> None:
        while not self._token.wait(self.interval):
            self._write(self.marker)

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def __enter__(self) -> "ProgressIndicator":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def _default_extractor(logger: logging.Logger) -> Extractor:
    def _extract(payload: bytes, app_dir: Path) -> object:
        return extract_payload(payload, app_dir, logger=logger)

    return _extract


def prepare_application(
    config: StubConfig,
    payload: bytes,
    *,
    base_dir: Path,
    extractor: Optional[Extractor] = None,
    stream: Optional[TextIO] = None,
    progress_interval: float = PROGRESS_INTERVAL,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Return a directory holding the fully extracted application.

    Args:
        config: Footer descriptor; ``identifier`` namespaces the cache slots.
        payload: Compressed archive bytes.
        base_dir: Absolute base cache directory, resolved once at startup.
        extractor: Callable ``(payload, app_dir)``; defaults to
            :func:`~Caxa.Stub.io.extract_payload`.
        stream: Destination of the uncompression message and progress markers.
        progress_interval: Seconds between progress markers.
        logger: Logger for protocol decisions.

    Returns:
        The application directory of the slot that was reused or extracted.

    Raises:
        StagingFailure: If the lock directory cannot be created.
        ExtractionError: If extraction fails; the slot is removed first.
    """

    log = logger or get_logger()
    extract = extractor or _default_extractor(log)
    attempt = 0
    while True:
        location = staging_location(base_dir, config.identifier, attempt)
        context = {
            "stage": "staging",
            "identifier": config.identifier,
            "attempt": attempt,
            "app_dir": str(location.app_dir),
        }

        if location.app_dir.is_dir():
            if not location.lock_dir.exists():
                log.debug("reusing extracted application", extra=context)
                return location.app_dir
            log.debug("slot is locked, trying next attempt", extra=context)
            attempt += 1
            continue

        try:
            location.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StagingFailure(f"failed to create lock {location.lock_dir}: {exc}") from exc

        log.info("extracting application", extra=context)
        indicator: Optional[ProgressIndicator] = None
        if config.message:
            indicator = ProgressIndicator(
                config.message, stream=stream, interval=progress_interval
            )
            indicator.start()

        try:
            extract(payload, location.app_dir)
        except BaseException:
            if indicator is not None:
                indicator.stop()
            remove_tree(location.app_dir, logger=log)
            remove_tree(location.lock_dir, logger=log)
            raise

        if indicator is not None:
            indicator.stop()
        if not remove_tree(location.lock_dir, logger=log):
            log.warning("lock directory left behind; next launch will use a new slot", extra=context)
        return location.app_dir
