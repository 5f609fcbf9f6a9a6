"""HTTP endpoints served by the worker daemon."""

from . import status

__all__ = ["status"]
