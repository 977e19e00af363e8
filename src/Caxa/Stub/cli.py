"""Process entry point: read the artifact, stage the payload, launch the command.

The wrapper has no options of its own; every argument is forwarded to the
bundled command.  Fatal conditions are reported on stderr with a ``caxa:``
prefix and exit with status 1.  Once the child has run, its exit status is the
wrapper's exit status.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Sequence

from .artifact import read_self_image
from .errors import (
    ArtifactUnreadable,
    CaxaStubError,
    ConfigurationError,
    CorruptArtifact,
    LaunchError,
)
from .launcher import Exited, launch
from .logging_utils import get_logger, setup_logging
from .settings import load_settings, resolve_base_dir
from .staging import prepare_application

__all__ = ["main", "run"]


def main(argv: Optional[Sequence[str]] = None, *, image_path: Optional[Path] = None) -> int:
    """Run the bundled application and return the exit status to use.

    Args:
        argv: Arguments to forward (excluding program name); defaults to
            ``sys.argv[1:]``.
        image_path: Artifact to read instead of the running image.

    Returns:
        The child's exit status, or ``1`` on any fatal runtime error.
    """

    forwarded = list(sys.argv[1:] if argv is None else argv)
    logger = get_logger()

    try:
        settings = load_settings()
        logger = setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    except ConfigurationError as exc:
        setup_logging()
        logger.error("%s", exc)
        return 1
    except OSError as exc:
        setup_logging()
        logger.error("failed to configure logging: %s", exc)
        return 1

    try:
        config, payload = read_self_image(image_path)
    except CorruptArtifact as exc:
        logger.error("binary corrupted: %s", exc)
        return 1
    except ArtifactUnreadable as exc:
        logger.error("%s", exc)
        return 1

    try:
        app_dir = prepare_application(
            config, payload, base_dir=resolve_base_dir(settings), logger=logger
        )
    except CaxaStubError as exc:
        logger.error("failed to prepare application: %s", exc)
        return 1

    try:
        outcome = launch(config.command, app_dir, forwarded, logger=logger)
    except LaunchError as exc:
        logger.error("execution failed: %s", exc)
        return 1

    if isinstance(outcome, Exited):
        return outcome.code
    logger.error("execution failed: %s", outcome.reason)
    return 1


def run() -> None:
    """Console-script entry point."""

    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover
    run()
