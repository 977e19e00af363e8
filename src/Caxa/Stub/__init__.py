"""Runtime for self-extracting Caxa application bundles.

An artifact carries a compressed application payload and a JSON footer
appended to a host executable.  This package recovers both from the running
image, extracts the payload once into a per-identifier cache directory, and
runs the bundled command with the cache path substituted in.
"""

from __future__ import annotations

from .artifact import ARCHIVE_SEPARATOR, StubConfig, parse_artifact, read_self_image
from .errors import (
    ArchiveFormatError,
    ArtifactUnreadable,
    CaxaStubError,
    ConfigurationError,
    CorruptArtifact,
    EmptyCommandError,
    ExtractionError,
    ExtractionIOError,
    LaunchError,
    PathTraversalError,
    StagingFailure,
)
from .io import ParallelExtractor, extract_payload
from .launcher import Exited, SpawnFailed, build_argv, launch, substitute_placeholders
from .settings import StubSettings, resolve_base_dir
from .staging import ProgressIndicator, StagingLocation, prepare_application, staging_location

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ARCHIVE_SEPARATOR",
    "StubConfig",
    "parse_artifact",
    "read_self_image",
    "ParallelExtractor",
    "extract_payload",
    "ProgressIndicator",
    "StagingLocation",
    "prepare_application",
    "staging_location",
    "Exited",
    "SpawnFailed",
    "build_argv",
    "launch",
    "substitute_placeholders",
    "StubSettings",
    "resolve_base_dir",
    "CaxaStubError",
    "ConfigurationError",
    "ArtifactUnreadable",
    "CorruptArtifact",
    "StagingFailure",
    "ExtractionError",
    "PathTraversalError",
    "ArchiveFormatError",
    "ExtractionIOError",
    "LaunchError",
    "EmptyCommandError",
]
