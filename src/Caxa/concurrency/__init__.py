"""
Concurrency helpers shared across Caxa components.

Currently exposes :func:`create_executor`, a thread pool with bounded
submission used to parallelize small-file writes during payload extraction.
"""

from .executors import BoundedExecutor, create_executor, default_workers

__all__ = ["BoundedExecutor", "create_executor", "default_workers"]
