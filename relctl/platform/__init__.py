"""Host-level helpers: subprocesses and atomic filesystem writes."""

from relctl.platform.files import atomic_symlink, atomic_write_text, read_symlink, remove_tree
from relctl.platform.process import ProcessError, run

__all__ = [
    "ProcessError",
    "atomic_symlink",
    "atomic_write_text",
    "read_symlink",
    "remove_tree",
    "run",
]
