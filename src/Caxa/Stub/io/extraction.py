# === NAVMAP v1 ===
# {
#   "module": "Caxa.Stub.io.extraction",
#   "purpose": "Parallel, traversal-checked extraction of the embedded payload",
#   "sections": [
#     {
#       "id": "extractionstats",
#       "name": "ExtractionStats",
#       "anchor": "class-extractionstats",
#       "kind": "class"
#     },
#     {
#       "id": "extractionjob",
#       "name": "ExtractionJob",
#       "anchor": "class-extractionjob",
#       "kind": "class"
#     },
#     {
#       "id": "parallelextractor",
#       "name": "ParallelExtractor",
#       "anchor": "class-parallelextractor",
#       "kind": "class"
#     },
#     {
#       "id": "extract-payload",
#       "name": "extract_payload",
#       "anchor": "function-extract-payload",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Extract the compressed payload into a staging directory.

libarchive decompresses the payload and yields archive entries one at a time,
strictly in stream order, on the calling thread.  Every entry name is resolved
against the destination root before anything touches the filesystem; one bad
name aborts the whole extraction.

Small regular files are read fully into memory and written by a bounded worker
pool.  Files at or above :data:`SMALL_FILE_THRESHOLD` are streamed straight from
the decompressor to disk so peak memory stays bounded.  Directories and
symlinks are created synchronously; a symlink is only created once every
write queued before it has finished.  Other entry kinds are skipped.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent import futures
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import libarchive

from ...concurrency import create_executor
from ..cancellation import CancellationToken
from ..errors import ArchiveFormatError, ExtractionError, ExtractionIOError
from ..logging_utils import get_logger
from .filesystem import canonical_root, ensure_real_parent_within, resolve_member_target

__all__ = [
    "SMALL_FILE_THRESHOLD",
    "ExtractionJob",
    "ExtractionStats",
    "ParallelExtractor",
    "extract_payload",
]

SMALL_FILE_THRESHOLD = 1 << 20
_DIR_MODE = 0o755


@dataclass
class ExtractionStats:
    """Counters describing a finished extraction."""

    directories: int = 0
    files: int = 0
    streamed_files: int = 0
    symlinks: int = 0
    skipped: int = 0
    bytes_written: int = 0


@dataclass(frozen=True)
class ExtractionJob:
    """A buffered regular file waiting to be written by the worker pool."""

    target: str
    data: bytes
    mode: int


class _FirstFailure:
    """Records the first error raised anywhere in the extraction."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.error: Optional[BaseException] = None
        self.token = CancellationToken()

    def record(self, exc: BaseException) -> None:
        with self._lock:
            if self.error is None:
                self.error = exc
        self.token.cancel()

    def watch(self, future: futures.Future) -> None:
        exc = future.exception()
        if exc is not None:
            self.record(exc)


def _io_error(message: str, path: str, exc: OSError) -> ExtractionIOError:
    error = ExtractionIOError(f"{message} {path}: {exc}", path=path)
    error.__cause__ = exc
    return error


def _entry_path(value: Union[str, bytes]) -> str:
    # libarchive hands back raw bytes for names that do not decode in the header codec.
    if isinstance(value, bytes):
        return os.fsdecode(value)
    return value


class ParallelExtractor:
    """Unpack a compressed archive payload into ``destination``.

    Args:
        destination: Staging root. Created if missing.
        workers: Size of the write pool; defaults to the CPU count.
        logger: Logger for progress and summary records.
    """

    def __init__(
        self,
        destination: Path,
        *,
        workers: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.destination = Path(destination)
        self.workers = workers
        self.logger = logger or get_logger()
        self.stats = ExtractionStats()
        self._root = canonical_root(self.destination)
        self._real_root = self._root
        self._failure = _FirstFailure()
        self._stats_lock = threading.Lock()
        self._outstanding: List[futures.Future] = []

    def extract(self, payload: bytes) -> ExtractionStats:
        """Extract ``payload`` and return the collected statistics.

        Raises:
            PathTraversalError: An entry resolves outside the destination.
            ArchiveFormatError: The compressed stream or archive framing is invalid.
            ExtractionIOError: Writing to disk failed.
        """

        try:
            os.makedirs(self._root, mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise _io_error("failed to create", self._root, exc) from exc
        self._real_root = os.path.realpath(self._root)

        executor = create_executor(self.workers)
        try:
            with libarchive.memory_reader(payload) as archive:
                for entry in archive:
                    if self._failure.token.is_cancelled():
                        break
                    self._dispatch(entry, executor)
        except libarchive.ArchiveError as exc:
            error = ArchiveFormatError(f"malformed payload: {exc}")
            error.__cause__ = exc
            self._failure.record(error)
        except ExtractionError as exc:
            self._failure.record(exc)
        finally:
            executor.shutdown(wait=True)

        if self._failure.error is not None:
            self.logger.debug(
                "extraction aborted: %s",
                self._failure.error,
                extra={"stage": "extract", "app_dir": self._root},
            )
            raise self._failure.error

        self.logger.info(
            "extracted payload: %d files (%d streamed), %d directories, %d symlinks, %d bytes",
            self.stats.files,
            self.stats.streamed_files,
            self.stats.directories,
            self.stats.symlinks,
            self.stats.bytes_written,
            extra={"stage": "extract", "app_dir": self._root},
        )
        return self.stats

    def _dispatch(self, entry, executor) -> None:
        name = _entry_path(entry.pathname)
        target = resolve_member_target(self._root, name)

        if entry.isdir:
            self._make_dirs(target)
            self.stats.directories += 1
        elif entry.issym:
            self._make_symlink(target, _entry_path(entry.linkpath))
            self.stats.symlinks += 1
        elif entry.islnk or not entry.isreg:
            self.logger.debug(
                "skipping unsupported entry %s",
                name,
                extra={"stage": "extract", "member": name},
            )
            self.stats.skipped += 1
        elif (entry.size or 0) < SMALL_FILE_THRESHOLD:
            data = b"".join(entry.get_blocks())
            job = ExtractionJob(target=target, data=data, mode=entry.perm)
            future = executor.submit(self._write_job, job)
            future.add_done_callback(self._failure.watch)
            self._outstanding.append(future)
        else:
            written = self._stream_file(target, entry)
            self._count_file(written, streamed=True)

    def _count_file(self, written: int, *, streamed: bool = False) -> None:
        with self._stats_lock:
            self.stats.files += 1
            self.stats.bytes_written += written
            if streamed:
                self.stats.streamed_files += 1

    def _drain(self) -> None:
        """Block until every write handed to the pool so far has finished."""

        if self._outstanding:
            futures.wait(self._outstanding)
            self._outstanding = []

    def _make_dirs(self, path: str) -> None:
        ensure_real_parent_within(self._real_root, path)
        try:
            os.makedirs(path, mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise _io_error("failed to create directory", path, exc) from exc

    def _make_parents(self, target: str) -> None:
        ensure_real_parent_within(self._real_root, target)
        try:
            os.makedirs(os.path.dirname(target), mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise _io_error("failed to create parent of", target, exc) from exc

    def _make_symlink(self, target: str, link_target: str) -> None:
        # Queued writes were checked against the current tree; let them land
        # before a link can redirect any of their parent directories.
        self._drain()
        self._make_parents(target)
        try:
            if os.path.islink(target) or os.path.isfile(target):
                os.unlink(target)
            elif os.path.isdir(target):
                os.rmdir(target)
            os.symlink(link_target, target)
        except OSError as exc:
            raise _io_error("failed to create symlink", target, exc) from exc

    def _write_job(self, job: ExtractionJob) -> None:
        self._make_parents(job.target)
        try:
            with open(job.target, "wb") as handle:
                handle.write(job.data)
            os.chmod(job.target, job.mode)
        except OSError as exc:
            raise _io_error("failed to write", job.target, exc) from exc
        self._count_file(len(job.data))

    def _stream_file(self, target: str, entry) -> int:
        self._make_parents(target)
        written = 0
        try:
            with open(target, "wb") as handle:
                for block in entry.get_blocks():
                    handle.write(block)
                    written += len(block)
            os.chmod(target, entry.perm)
        except OSError as exc:
            raise _io_error("failed to write", target, exc) from exc
        return written


def extract_payload(
    payload: bytes,
    destination: Path,
    *,
    workers: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> ExtractionStats:
    """Extract ``payload`` into ``destination`` using a :class:`ParallelExtractor`."""

    return ParallelExtractor(destination, workers=workers, logger=logger).extract(payload)
