"""Shared fixtures for the caxa_stub test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import pytest

from Caxa.Stub.logging_utils import LOGGER_NAME
from tests.caxa_stub.payloads import compose_artifact


@pytest.fixture
def write_artifact(tmp_path: Path) -> Callable[..., Path]:
    """Write composed artifact bytes to ``tmp_path`` and return the file path."""

    def _write(payload: bytes, **kwargs) -> Path:
        path = tmp_path / "artifact.bin"
        path.write_bytes(compose_artifact(payload, **kwargs))
        return path

    return _write


@pytest.fixture
def cache_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``CAXA_TEMP_DIR`` at a fresh directory."""

    root = tmp_path / "cache"
    monkeypatch.setenv("CAXA_TEMP_DIR", str(root))
    return root


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Drop runtime overrides from the environment and reset logger handlers."""

    for name in ("CAXA_TEMP_DIR", "CAXA_LOG_LEVEL", "CAXA_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
