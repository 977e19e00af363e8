# === NAVMAP v1 ===
# {
#   "module": "tests.caxa_stub.test_extraction",
#   "purpose": "Tests for libarchive-based parallel payload extraction",
#   "sections": [
#     {"id": "happy_paths", "name": "Happy Path Tests", "anchor": "HPT", "kind": "tests"},
#     {"id": "security", "name": "Containment Tests", "anchor": "SEC", "kind": "tests"},
#     {"id": "failures", "name": "Failure Propagation Tests", "anchor": "ERR", "kind": "tests"},
#     {"id": "names", "name": "Entry Name and Replacement Tests", "anchor": "NAM", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for :mod:`Caxa.Stub.io.extraction`.

Tests cover:
- Small buffered files and large streamed files land byte-identical
- Permission bits are applied exactly
- Directories, symlinks and skipped entry kinds
- Path traversal and absolute names abort extraction
- Malformed payloads and write failures surface as extraction errors
"""

from __future__ import annotations

import logging
import os
import stat
import sys
import tarfile
import threading
import time
from pathlib import Path

import pytest

from Caxa.Stub.errors import (
    ArchiveFormatError,
    ExtractionError,
    ExtractionIOError,
    PathTraversalError,
)
from Caxa.Stub.io import (
    SMALL_FILE_THRESHOLD,
    ParallelExtractor,
    extract_payload,
    resolve_member_target,
)
from Caxa.Stub.io import extraction as extraction_mod
from tests.caxa_stub.payloads import Member, build_payload

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions and symlinks")


def _logger() -> logging.Logger:
    logger = logging.getLogger("test.caxa.extract")
    logger.setLevel(logging.DEBUG)
    return logger


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.lstat().st_mode)


# ============================================================================
# HAPPY PATH TESTS
# ============================================================================


def test_extract_small_files_and_directories(tmp_path: Path) -> None:
    payload = build_payload(
        [
            Member("package.json", b'{"name": "demo"}'),
            Member("lib", kind=tarfile.DIRTYPE, mode=0o755),
            Member("lib/index.js", b"console.log('hi')\n"),
            Member("lib/nested/deep.txt", b"deep"),
        ]
    )
    output = tmp_path / "app"

    stats = extract_payload(payload, output, logger=_logger())

    assert (output / "package.json").read_bytes() == b'{"name": "demo"}'
    assert (output / "lib" / "index.js").read_bytes() == b"console.log('hi')\n"
    assert (output / "lib" / "nested" / "deep.txt").read_bytes() == b"deep"
    assert stats.files == 3
    assert stats.directories == 1
    assert stats.streamed_files == 0


def test_large_file_is_streamed_byte_identical(tmp_path: Path) -> None:
    big = bytes(range(256)) * ((SMALL_FILE_THRESHOLD // 256) + 17)
    assert len(big) > SMALL_FILE_THRESHOLD
    payload = build_payload([Member("bin/blob.dat", big), Member("small.txt", b"s")])
    output = tmp_path / "app"

    stats = extract_payload(payload, output, workers=2)

    assert (output / "bin" / "blob.dat").read_bytes() == big
    assert (output / "small.txt").read_bytes() == b"s"
    assert stats.streamed_files == 1
    assert stats.files == 2
    assert stats.bytes_written == len(big) + 1


def test_file_exactly_at_threshold_is_streamed(tmp_path: Path) -> None:
    data = b"z" * SMALL_FILE_THRESHOLD
    stats = extract_payload(build_payload([Member("edge.bin", data)]), tmp_path / "app")

    assert stats.streamed_files == 1
    assert (tmp_path / "app" / "edge.bin").read_bytes() == data


@posix_only
def test_permission_bits_are_applied_exactly(tmp_path: Path) -> None:
    big = b"\x7fELF" + b"\x00" * SMALL_FILE_THRESHOLD
    payload = build_payload(
        [
            Member("run.sh", b"#!/bin/sh\necho hi\n", mode=0o755),
            Member("secret.txt", b"s3cret", mode=0o600),
            Member("bin/large-exe", big, mode=0o750),
        ]
    )
    output = tmp_path / "app"

    extract_payload(payload, output)

    assert _mode(output / "run.sh") == 0o755
    assert _mode(output / "secret.txt") == 0o600
    assert _mode(output / "bin" / "large-exe") == 0o750


def test_many_small_files_with_single_worker(tmp_path: Path) -> None:
    members = [Member(f"files/{index:03d}.txt", f"file-{index}".encode()) for index in range(64)]
    output = tmp_path / "app"

    stats = ParallelExtractor(output, workers=1).extract(build_payload(members))

    assert stats.files == 64
    for index in range(64):
        assert (output / "files" / f"{index:03d}.txt").read_text() == f"file-{index}"


def test_empty_archive_creates_destination(tmp_path: Path) -> None:
    output = tmp_path / "nested" / "app"

    stats = extract_payload(build_payload([]), output)

    assert output.is_dir()
    assert list(output.iterdir()) == []
    assert stats.files == 0


@posix_only
def test_symlink_is_created_with_link_target(tmp_path: Path) -> None:
    payload = build_payload(
        [
            Member("real.txt", b"target contents"),
            Member("alias.txt", kind=tarfile.SYMTYPE, linkname="real.txt"),
        ]
    )
    output = tmp_path / "app"

    stats = extract_payload(payload, output)

    link = output / "alias.txt"
    assert link.is_symlink()
    assert os.readlink(link) == "real.txt"
    assert stats.symlinks == 1


@posix_only
def test_symlink_replaces_existing_file(tmp_path: Path) -> None:
    output = tmp_path / "app"
    output.mkdir()
    (output / "current").write_text("stale")
    payload = build_payload([Member("current", kind=tarfile.SYMTYPE, linkname="v2")])

    extract_payload(payload, output)

    assert (output / "current").is_symlink()
    assert os.readlink(output / "current") == "v2"


@posix_only
def test_dangling_symlink_is_allowed(tmp_path: Path) -> None:
    payload = build_payload([Member("dangling", kind=tarfile.SYMTYPE, linkname="missing/file")])
    output = tmp_path / "app"

    extract_payload(payload, output)

    assert os.readlink(output / "dangling") == "missing/file"


def test_unsupported_entry_kinds_are_skipped(tmp_path: Path) -> None:
    payload = build_payload(
        [
            Member("pipe", kind=tarfile.FIFOTYPE),
            Member("kept.txt", b"kept"),
        ]
    )
    output = tmp_path / "app"

    stats = extract_payload(payload, output)

    assert not (output / "pipe").exists()
    assert (output / "kept.txt").read_bytes() == b"kept"
    assert stats.skipped == 1


def test_existing_files_are_overwritten(tmp_path: Path) -> None:
    output = tmp_path / "app"
    output.mkdir()
    (output / "config.txt").write_text("old contents that are longer")

    extract_payload(build_payload([Member("config.txt", b"new")]), output)

    assert (output / "config.txt").read_bytes() == b"new"


# ============================================================================
# CONTAINMENT TESTS
# ============================================================================


def test_parent_traversal_is_rejected(tmp_path: Path) -> None:
    output = tmp_path / "deep" / "nested" / "app"
    payload = build_payload([Member("../../../etc/passwd", b"root:x:0:0")])

    with pytest.raises(PathTraversalError) as excinfo:
        extract_payload(payload, output)

    assert excinfo.value.member == "../../../etc/passwd"
    assert "illegal file path" in str(excinfo.value)
    assert not (tmp_path / "etc").exists()


def test_absolute_member_is_rejected(tmp_path: Path) -> None:
    outside = tmp_path / "outside.txt"
    payload = build_payload([Member(str(outside), b"escaped")])

    with pytest.raises(PathTraversalError):
        extract_payload(payload, tmp_path / "app")

    assert not outside.exists()


def test_traversal_aborts_remaining_entries(tmp_path: Path) -> None:
    payload = build_payload(
        [
            Member("first.txt", b"1"),
            Member("sub/../../escape.txt", b"x"),
            Member("never.txt", b"never"),
        ]
    )
    output = tmp_path / "app"

    with pytest.raises(PathTraversalError):
        extract_payload(payload, output)

    assert not (output / "never.txt").exists()
    assert not (tmp_path / "escape.txt").exists()


def test_inner_dotdot_that_stays_inside_is_allowed(tmp_path: Path) -> None:
    output = tmp_path / "app"

    extract_payload(build_payload([Member("a/../b.txt", b"ok")]), output)

    assert (output / "b.txt").read_bytes() == b"ok"


@posix_only
def test_write_through_escaping_symlink_is_rejected(tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    payload = build_payload(
        [
            Member("link", kind=tarfile.SYMTYPE, linkname=str(outside)),
            Member("link/evil.txt", b"pwned"),
        ]
    )

    with pytest.raises(PathTraversalError):
        extract_payload(payload, tmp_path / "app")

    assert not (outside / "evil.txt").exists()


@pytest.mark.parametrize("name", ["..", "../sibling", ".", "./", "a/../.."])
def test_resolve_member_target_rejects_names_outside_root(tmp_path: Path, name: str) -> None:
    root = os.path.normpath(str(tmp_path / "root"))

    with pytest.raises(PathTraversalError):
        resolve_member_target(root, name)


def test_resolve_member_target_normalizes_inside_names(tmp_path: Path) -> None:
    root = os.path.normpath(str(tmp_path / "root"))

    assert resolve_member_target(root, "./a/./b/../c") == os.path.join(root, "a", "c")


# ============================================================================
# FAILURE PROPAGATION TESTS
# ============================================================================


def test_garbage_payload_is_format_error(tmp_path: Path) -> None:
    with pytest.raises(ArchiveFormatError):
        extract_payload(b"this is not a compressed archive at all" * 8, tmp_path / "app")


def test_truncated_payload_is_format_error(tmp_path: Path) -> None:
    payload = build_payload([Member("data.bin", bytes(range(256)) * 4096)])

    with pytest.raises(ArchiveFormatError):
        extract_payload(payload[: len(payload) // 2], tmp_path / "app")


@posix_only
def test_worker_write_failure_propagates(tmp_path: Path) -> None:
    output = tmp_path / "app"
    output.mkdir()
    (output / "blocked").write_text("a file where a directory is needed")
    payload = build_payload([Member("blocked/child.txt", b"child"), Member("other.txt", b"o")])

    with pytest.raises(ExtractionIOError) as excinfo:
        extract_payload(payload, output, workers=2)

    assert isinstance(excinfo.value, ExtractionError)
    assert excinfo.value.path is not None


def test_unwritable_destination_is_io_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file")

    with pytest.raises(ExtractionIOError):
        extract_payload(build_payload([Member("a.txt", b"a")]), blocker / "app")


def test_failed_write_is_not_counted(tmp_path: Path) -> None:
    output = tmp_path / "app"
    output.mkdir()
    (output / "blocked").write_text("a file where a directory is needed")
    extractor = ParallelExtractor(output, workers=1)

    with pytest.raises(ExtractionIOError):
        extractor.extract(build_payload([Member("blocked/child.txt", b"c" * 100)]))

    assert extractor.stats.files == 0
    assert extractor.stats.bytes_written == 0


# ============================================================================
# ENTRY NAME AND REPLACEMENT TESTS
# ============================================================================

linux_only = pytest.mark.skipif(sys.platform != "linux", reason="raw byte file names")


def _latin1_payload(members) -> bytes:
    return build_payload(members, tar_format=tarfile.GNU_FORMAT, encoding="latin-1")


@linux_only
def test_non_utf8_member_name_is_extracted(tmp_path: Path) -> None:
    output = tmp_path / "app"

    stats = extract_payload(_latin1_payload([Member("caf\xe9.txt", b"bonjour")]), output)

    entries = os.listdir(os.fsencode(output))
    assert len(entries) == 1
    assert (output / os.fsdecode(entries[0])).read_bytes() == b"bonjour"
    assert stats.files == 1


@linux_only
def test_non_utf8_traversal_name_is_rejected(tmp_path: Path) -> None:
    payload = _latin1_payload([Member("../caf\xe9.txt", b"x")])

    with pytest.raises(PathTraversalError):
        extract_payload(payload, tmp_path / "app")

    assert os.listdir(os.fsencode(tmp_path)) == [b"app"]


@posix_only
def test_symlink_replaces_empty_directory(tmp_path: Path) -> None:
    output = tmp_path / "app"
    (output / "current").mkdir(parents=True)

    extract_payload(build_payload([Member("current", kind=tarfile.SYMTYPE, linkname="v2")]), output)

    assert os.readlink(output / "current") == "v2"


@posix_only
def test_symlink_over_populated_directory_is_io_error(tmp_path: Path) -> None:
    output = tmp_path / "app"
    (output / "current").mkdir(parents=True)
    (output / "current" / "keep.txt").write_text("keep")

    with pytest.raises(ExtractionIOError):
        extract_payload(
            build_payload([Member("current", kind=tarfile.SYMTYPE, linkname="v2")]), output
        )

    assert (output / "current" / "keep.txt").read_text() == "keep"


@posix_only
def test_relinking_waits_for_queued_writes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A queued write that passed its parent check still lands inside the root."""
    outside = tmp_path / "outside"
    outside.mkdir()
    checked = extraction_mod.ensure_real_parent_within

    def slow_check(real_root: str, target: str) -> None:
        checked(real_root, target)
        if threading.current_thread().name.startswith("caxa-extract"):
            time.sleep(0.3)

    monkeypatch.setattr(extraction_mod, "ensure_real_parent_within", slow_check)
    payload = build_payload(
        [
            Member("real", kind=tarfile.DIRTYPE, mode=0o755),
            Member("a", kind=tarfile.SYMTYPE, linkname="real"),
            Member("a/f.txt", b"inside"),
            Member("a", kind=tarfile.SYMTYPE, linkname=str(outside)),
        ]
    )
    output = tmp_path / "app"

    extract_payload(payload, output, workers=2)

    assert (output / "real" / "f.txt").read_bytes() == b"inside"
    assert not (outside / "f.txt").exists()
    assert os.readlink(output / "a") == str(outside)
