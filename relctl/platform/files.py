"""Filesystem helpers.

Both writers here publish with ``os.replace`` so a concurrent reader sees
either the old or the new content, never a partial file or a missing link.
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from collections.abc import Callable
from pathlib import Path

__all__ = ["atomic_write_text", "atomic_symlink", "read_symlink", "remove_tree"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def atomic_symlink(link: Path, target: Path) -> None:
    """Point ``link`` at ``target`` with a single rename.

    The new link is created under a temporary name next to ``link`` and
    renamed over it; there is no window where ``link`` is absent.

    Raises:
        OSError: the temporary link could not be created or renamed.
    """
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.{os.getpid()}.tmp")
    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()
    tmp.symlink_to(target, target_is_directory=True)
    try:
        os.replace(tmp, link)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def read_symlink(link: Path) -> Path | None:
    """Return the absolute target of ``link``, or None if it is not a symlink."""
    if not link.is_symlink():
        return None
    target = Path(os.readlink(link))
    if not target.is_absolute():
        target = link.parent / target
    return Path(os.path.normpath(target))


def _remove_readonly(_func: Callable[[str], object], path: str, exc: BaseException) -> None:
    if isinstance(exc, PermissionError):
        os.chmod(path, stat.S_IWRITE)
        os.unlink(path)
    else:
        raise exc


def remove_tree(path: Path) -> None:
    """Delete a directory tree, or a symlink without following it.

    Raises:
        OSError: the tree could not be removed.
    """
    if path.is_symlink():
        path.unlink()
        return
    shutil.rmtree(path, onerror=lambda func, p, exc_info: _remove_readonly(func, p, exc_info[1]))
