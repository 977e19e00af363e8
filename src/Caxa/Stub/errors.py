# === NAVMAP v1 ===
# {
#   "module": "Caxa.Stub.errors",
#   "purpose": "Exception hierarchy for the self-extracting bundle runtime",
#   "sections": [
#     {
#       "id": "caxastuberror",
#       "name": "CaxaStubError",
#       "anchor": "class-caxastuberror",
#       "kind": "class"
#     },
#     {
#       "id": "extractionerror",
#       "name": "ExtractionError",
#       "anchor": "class-extractionerror",
#       "kind": "class"
#     },
#     {
#       "id": "launcherror",
#       "name": "LaunchError",
#       "anchor": "class-launcherror",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared by the artifact reader, stager, extractor and launcher.

The runtime walks a short pipeline: read its own image, stage the embedded
payload into the cache, then launch the bundled command.  Each step fails with
its own subclass so the entry point can print a precise diagnostic, while
callers that only care about "something fatal happened" can catch
:class:`CaxaStubError`.  The launched child's own exit status is never an
error and is not represented here.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
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


class CaxaStubError(RuntimeError):
    """Base exception for fatal runtime failures."""


class ConfigurationError(CaxaStubError):
    """Raised when environment-provided settings are invalid."""


class ArtifactUnreadable(CaxaStubError):
    """Raised when the running artifact cannot be located or read from disk."""


class CorruptArtifact(CaxaStubError):
    """Raised when the separator or footer is missing, or the footer is invalid."""


class StagingFailure(CaxaStubError):
    """Raised when lock or application directories cannot be created."""


class ExtractionError(CaxaStubError):
    """Base class for failures while unpacking the payload."""


class PathTraversalError(ExtractionError):
    """Raised when an archive entry resolves outside the destination root."""

    def __init__(self, message: str, *, member: Optional[str] = None) -> None:
        super().__init__(message)
        self.member = member


class ArchiveFormatError(ExtractionError):
    """Raised for malformed compressed streams or archive framing."""


class ExtractionIOError(ExtractionError):
    """Raised when writing extracted content to disk fails."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class LaunchError(CaxaStubError):
    """Base class for failures detected before the target process is spawned."""


class EmptyCommandError(LaunchError):
    """Raised when the substituted command plus forwarded arguments is empty."""
