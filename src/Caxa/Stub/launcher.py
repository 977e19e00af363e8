# === NAVMAP v1 ===
# {
#   "module": "Caxa.Stub.launcher",
#   "purpose": "Substitute the staging path into the command template and run it",
#   "sections": [
#     {
#       "id": "exited",
#       "name": "Exited",
#       "anchor": "class-exited",
#       "kind": "class"
#     },
#     {
#       "id": "spawnfailed",
#       "name": "SpawnFailed",
#       "anchor": "class-spawnfailed",
#       "kind": "class"
#     },
#     {
#       "id": "substitute-placeholders",
#       "name": "substitute_placeholders",
#       "anchor": "function-substitute-placeholders",
#       "kind": "function"
#     },
#     {
#       "id": "build-argv",
#       "name": "build_argv",
#       "anchor": "function-build-argv",
#       "kind": "function"
#     },
#     {
#       "id": "launch",
#       "name": "launch",
#       "anchor": "function-launch",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Run the bundled command with stdio passed straight through.

The child inherits the wrapper's standard streams, nothing is buffered or
intercepted, and the wrapper blocks until the child exits.  The outcome is a
plain value: :class:`Exited` carries the child's status, :class:`SpawnFailed`
carries the reason the process could not be started.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from .errors import EmptyCommandError
from .logging_utils import get_logger

__all__ = [
    "PLACEHOLDER_PATTERN",
    "Exited",
    "LaunchOutcome",
    "SpawnFailed",
    "build_argv",
    "launch",
    "substitute_placeholders",
]

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*caxa\s*\}\}")


@dataclass(frozen=True)
class Exited:
    """The child ran and terminated with ``code``."""

    code: int


@dataclass(frozen=True)
class SpawnFailed:
    """The child could not be started."""

    reason: str


LaunchOutcome = Union[Exited, SpawnFailed]


def substitute_placeholders(command: Sequence[str], app_dir: Union[str, os.PathLike]) -> List[str]:
    """Replace every ``{{ caxa }}`` marker in ``command`` with ``app_dir``.

    The path is inserted verbatim; backslashes in Windows paths are not treated
    as escape sequences.
    """

    replacement = os.fspath(app_dir)
    return [PLACEHOLDER_PATTERN.sub(lambda _match: replacement, part) for part in command]


def build_argv(
    command: Sequence[str],
    app_dir: Union[str, os.PathLike],
    forwarded: Sequence[str],
) -> List[str]:
    """Return the substituted template followed by the forwarded arguments.

    Raises:
        EmptyCommandError: If the resulting vector is empty.
    """

    argv = substitute_placeholders(command, app_dir)
    argv.extend(forwarded)
    if not argv:
        raise EmptyCommandError("no command defined")
    return argv


def _exit_status(returncode: int) -> int:
    # Negative codes mean "killed by signal N"; report it the way shells do.
    if returncode < 0:
        return 128 - returncode
    return returncode


def launch(
    command: Sequence[str],
    app_dir: Union[str, os.PathLike],
    forwarded: Sequence[str],
    *,
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    logger: Optional[logging.Logger] = None,
) -> LaunchOutcome:
    """Spawn the bundled command and wait for it to finish.

    Raises:
        EmptyCommandError: Before spawning, if there is nothing to run.
    """

    log = logger or get_logger()
    argv = build_argv(command, app_dir, forwarded)
    log.debug("launching %s", argv, extra={"stage": "launch", "app_dir": os.fspath(app_dir)})

    try:
        process = popen(argv)
    except (OSError, ValueError) as exc:
        # ValueError covers arguments the OS cannot represent, such as embedded NUL.
        return SpawnFailed(reason=f"{argv[0]}: {exc}")

    while True:
        try:
            returncode = process.wait()
            break
        except KeyboardInterrupt:
            # The child got the same terminal signal; let it decide when to exit.
            continue
    return Exited(code=_exit_status(returncode))
