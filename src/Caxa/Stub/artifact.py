# === NAVMAP v1 ===
# {
#   "module": "Caxa.Stub.artifact",
#   "purpose": "Recover the footer descriptor and payload from the running artifact",
#   "sections": [
#     {
#       "id": "stubconfig",
#       "name": "StubConfig",
#       "anchor": "class-stubconfig",
#       "kind": "class"
#     },
#     {
#       "id": "parse-artifact",
#       "name": "parse_artifact",
#       "anchor": "function-parse-artifact",
#       "kind": "function"
#     },
#     {
#       "id": "locate-self-image",
#       "name": "locate_self_image",
#       "anchor": "function-locate-self-image",
#       "kind": "function"
#     },
#     {
#       "id": "read-self-image",
#       "name": "read_self_image",
#       "anchor": "function-read-self-image",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Self-description format of a bundled artifact.

An artifact is laid out as::

    [host stub bytes] "\\nCAXACAXACAXA\\n" [compressed payload] "\\n" [JSON footer]

The footer is everything after the final line break and must validate against
:class:`StubConfig`.  The payload is handed to the extractor untouched.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ArtifactUnreadable, CorruptArtifact

__all__ = [
    "ARCHIVE_SEPARATOR",
    "StubConfig",
    "locate_self_image",
    "parse_artifact",
    "read_self_image",
]

# Built at import time so the marker never appears verbatim in this module's bytes.
ARCHIVE_SEPARATOR = b"\n" + b"CAXA" * 3 + b"\n"
_FOOTER_SEPARATOR = b"\n"


class StubConfig(BaseModel):
    """Footer descriptor embedded at the end of every artifact."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    identifier: StrictStr = Field(description="Namespace of the cache directory")
    command: List[StrictStr] = Field(description="Launch template, may contain {{caxa}}")
    uncompression_message: Optional[StrictStr] = Field(
        default=None,
        alias="uncompressionMessage",
        description="Printed once when an extraction actually happens",
    )

    @field_validator("identifier")
    @classmethod
    def identifier_is_relative_path(cls, value: str) -> str:
        """Reject identifiers that could escape the cache namespace."""

        if not value:
            raise ValueError("identifier must be non-empty")
        normalized = value.replace("\\", "/")
        if PurePosixPath(normalized).is_absolute():
            raise ValueError(f"identifier must be relative: {value!r}")
        if any(part in {"", ".", ".."} for part in normalized.split("/")):
            raise ValueError(f"identifier contains unsafe segments: {value!r}")
        return value

    @property
    def message(self) -> Optional[str]:
        """Uncompression message, with empty strings treated as unset."""

        return self.uncompression_message or None


def parse_artifact(data: bytes) -> Tuple[StubConfig, bytes]:
    """Split raw artifact bytes into its footer descriptor and payload.

    Args:
        data: The complete bytes of the artifact.

    Returns:
        Tuple of the validated footer and the payload bytes.

    Raises:
        CorruptArtifact: If the footer or separator is missing, or the footer
            does not validate.
    """

    footer_idx = data.rfind(_FOOTER_SEPARATOR)
    if footer_idx == -1:
        raise CorruptArtifact("footer not found")

    try:
        config = StubConfig.model_validate_json(data[footer_idx + 1 :])
    except PydanticValidationError as exc:
        raise CorruptArtifact(f"invalid footer json: {exc}") from exc

    archive_idx = data.find(ARCHIVE_SEPARATOR)
    if archive_idx == -1:
        raise CorruptArtifact("archive separator not found")

    payload_start = archive_idx + len(ARCHIVE_SEPARATOR)
    if payload_start > footer_idx:
        raise CorruptArtifact("archive separator overlaps footer")

    return config, data[payload_start:footer_idx]


def locate_self_image() -> Path:
    """Return the on-disk path of the running artifact."""

    if getattr(sys, "frozen", False):
        return Path(sys.executable)
    if not sys.argv or not sys.argv[0]:
        raise ArtifactUnreadable("failed to find executable: argv[0] is empty")
    return Path(os.path.abspath(sys.argv[0]))


def read_self_image(path: Optional[Path] = None) -> Tuple[StubConfig, bytes]:
    """Read the artifact at ``path`` (default: the running image) and parse it."""

    image = path if path is not None else locate_self_image()
    try:
        data = image.read_bytes()
    except OSError as exc:
        raise ArtifactUnreadable(f"failed to read executable {image}: {exc}") from exc
    return parse_artifact(data)
