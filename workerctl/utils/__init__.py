"""Utility modules for workerctl."""

from .files import atomic_write_text
from .logging import setup_logging
from .syscalls import make_char_device, unmount_detached

__all__ = [
    "atomic_write_text",
    "setup_logging",
    "make_char_device",
    "unmount_detached",
]
