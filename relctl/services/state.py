"""On-disk deployment state.

All mutable state outside the release directories lives behind
``DeployState``: the active-release pointer, the deployed-revision marker,
the dependency-manifest-hash marker and the run history. The pointer and
markers are written by atomic replace, so a reader (or a crash) never
observes a half-written value; the history is append-only.

The pointer and the revision marker are two separate files and are not
updated together. A crash between the two leaves the marker stale, which
only widens the next run's restart set.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from relctl.core.layout import DeployLayout
from relctl.core.result import Err, Ok, Result
from relctl.core.structured import StrDict, as_str_dict
from relctl.platform.files import atomic_symlink, atomic_write_text, read_symlink

from .errors import ActivationError
from .model import Release

__all__ = ["DeployState"]


class DeployState:
    """Pointer, markers and history for one deploy root.

    Args:
        layout: Paths of the deploy root.
    """

    def __init__(self, layout: DeployLayout) -> None:
        self._layout = layout

    # -- active-release pointer ------------------------------------------

    def active_path(self) -> Path | None:
        """Directory the pointer resolves to, if it resolves to an existing one."""
        target = read_symlink(self._layout.current_link)
        if target is None or not target.is_dir():
            return None
        return target

    def active_release_id(self) -> str | None:
        """Id of the live release.

        Returns:
            The id, or None when there is no pointer, it dangles, or it points
            outside the releases directory.
        """
        target = self.active_path()
        if target is None:
            return None
        if target.parent.resolve() != self._layout.releases_dir.resolve():
            return None
        return target.name

    def point_to(self, release: Release) -> Result[None, ActivationError]:
        """Atomically repoint ``current`` at ``release``.

        The link target is relative so the deploy root can be moved or
        bind-mounted without breaking it.

        Args:
            release: Release to make live; its directory must exist.

        Returns:
            Ok(None), or Err(ActivationError) if the swap failed. On error the
            previous pointer is left in place.
        """
        link = self._layout.current_link
        if not release.path.is_dir():
            return Err(
                ActivationError(
                    release_id=release.id,
                    message=f"release directory does not exist: {release.path}",
                )
            )
        target = Path(os.path.relpath(release.path, link.parent))
        try:
            atomic_symlink(link, target)
        except OSError as e:
            return Err(
                ActivationError(
                    release_id=release.id,
                    message=f"could not repoint {link}: {e}",
                )
            )
        return Ok(None)

    # -- markers ----------------------------------------------------------

    def deployed_revision(self) -> str | None:
        """Revision of the last activation, None if unrecorded."""
        return self._read_marker(self._layout.revision_marker)

    def write_deployed_revision(self, revision: str) -> None:
        """Raises OSError if the marker cannot be written."""
        atomic_write_text(self._layout.revision_marker, revision + "\n")

    def manifest_hash(self) -> str | None:
        return self._read_marker(self._layout.manifest_hash_marker)

    def write_manifest_hash(self, digest: str) -> None:
        """Raises OSError if the marker cannot be written."""
        atomic_write_text(self._layout.manifest_hash_marker, digest + "\n")

    @staticmethod
    def _read_marker(path: Path) -> str | None:
        try:
            value = path.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, UnicodeDecodeError):
            return None
        return value or None

    # -- run history --------------------------------------------------------

    def append_history(self, entry: StrDict) -> None:
        """Append one outcome line to history.jsonl.

        Raises:
            OSError: the history file could not be written.
        """
        path = self._layout.history_path
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, sort_keys=True) + "\n")

    def read_history(self, limit: int | None = None) -> list[StrDict]:
        """Most recent outcomes first. Corrupt lines are skipped."""
        path = self._layout.history_path
        if not path.exists():
            return []
        entries: list[StrDict] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entry = as_str_dict(json.loads(line))
            except json.JSONDecodeError:
                continue
            if entry is not None:
                entries.append(entry)
        entries.reverse()
        return entries[:limit] if limit is not None else entries
