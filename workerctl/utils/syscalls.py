"""Thin wrappers over kernel interfaces that need elevated privileges."""

import ctypes
import ctypes.util
import os
import stat
from functools import lru_cache
from pathlib import Path
from typing import Union

# <sys/mount.h>
MNT_DETACH = 2


@lru_cache(maxsize=1)
def _libc() -> ctypes.CDLL:
    return ctypes.CDLL(ctypes.util.find_library("c") or "libc.so.6", use_errno=True)


def unmount_detached(path: Union[str, Path]) -> None:
    """Lazily unmount path (``umount2(path, MNT_DETACH)``).

    Raises:
        OSError: with the errno reported by the kernel
    """
    target = os.fsencode(str(path))
    if _libc().umount2(target, MNT_DETACH) != 0:
        errno = ctypes.get_errno()
        raise OSError(errno, os.strerror(errno), str(path))


def make_char_device(
    path: Union[str, Path], major: int, minor: int, mode: int = 0o644
) -> None:
    """Create a character device node, then force its permission bits past the umask."""
    os.mknod(str(path), stat.S_IFCHR | mode, os.makedev(major, minor))
    os.chmod(str(path), mode)
