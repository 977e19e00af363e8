"""Allow ``python -m Caxa.Stub``."""

from .cli import run

run()
