"""Release directory bookkeeping.

A release is a directory under ``releases/`` named by a UTC timestamp id
(``20261019T153000123456Z``). Ids sort lexicographically in creation order;
if the clock steps backwards the new id is bumped past the newest one so
the order stays monotonic.

Each release carries a ``.release.json`` metadata file. The code tree itself
is never modified after the builder finishes; only the metadata records what
later happened to the release (validated, activated, abandoned by rollback).
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path

from relctl.core.structured import as_str_dict
from relctl.platform.files import atomic_write_text

from .model import Release, ReleaseStatus, isoformat, utc_now

__all__ = ["ReleaseStore", "METADATA_FILE", "RELEASE_ID_FORMAT"]

METADATA_FILE = ".release.json"
RELEASE_ID_FORMAT = "%Y%m%dT%H%M%S%fZ"
_RELEASE_ID_RE = re.compile(r"^\d{8}T\d{12}Z$")


def is_release_id(name: str) -> bool:
    return bool(_RELEASE_ID_RE.match(name))


class ReleaseStore:
    """Releases under one directory, and their metadata.

    Args:
        releases_dir: Directory holding one subdirectory per release.
        clock: Source of "now" for ids and timestamps; tests pass a fake.
    """

    def __init__(
        self,
        releases_dir: Path,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.releases_dir = releases_dir
        self._clock = clock

    def new_id(self) -> str:
        """Id for the next release.

        Returns:
            The current UTC time formatted as an id, or the newest existing
            id plus one microsecond when the clock has not moved past it.
        """
        now = self._clock()
        candidate = now.strftime(RELEASE_ID_FORMAT)
        ids = self.ids()
        if ids and candidate <= ids[0]:
            newest = datetime.strptime(ids[0], RELEASE_ID_FORMAT)
            candidate = (newest + timedelta(microseconds=1)).strftime(RELEASE_ID_FORMAT)
        return candidate

    def ids(self) -> list[str]:
        """All release ids, newest first."""
        if not self.releases_dir.is_dir():
            return []
        names = [
            p.name
            for p in self.releases_dir.iterdir()
            if p.is_dir() and not p.is_symlink() and is_release_id(p.name)
        ]
        return sorted(names, reverse=True)

    def releases(self) -> list[Release]:
        """All releases, newest first."""
        return [self.load(release_id) for release_id in self.ids()]

    def history(self) -> list[Release]:
        """Releases that are valid rollback targets, newest first."""
        return [r for r in self.releases() if r.rollback_candidate]

    def get(self, release_id: str) -> Release | None:
        """Load a release if ``release_id`` names an existing one, else None."""
        if not is_release_id(release_id) or not (self.releases_dir / release_id).is_dir():
            return None
        return self.load(release_id)

    def load(self, release_id: str) -> Release:
        """Read a release's metadata.

        Missing or unreadable metadata yields a ``failed`` release, which keeps
        it out of activation and rollback.

        Args:
            release_id: Directory name under ``releases_dir``.

        Returns:
            The release, never None.
        """
        path = self.releases_dir / release_id
        meta_path = path / METADATA_FILE
        data: dict[str, object] = {}
        if meta_path.exists():
            try:
                data = as_str_dict(json.loads(meta_path.read_text(encoding="utf-8"))) or {}
            except (OSError, UnicodeDecodeError, json.JSONDecodeError):
                # Unreadable metadata: treat as an unvalidated release
                data = {"status": ReleaseStatus.FAILED.value}
        else:
            data = {"status": ReleaseStatus.FAILED.value}
        return Release.from_dict(path, data)

    def create(self, *, revision: str, ref: str) -> Release:
        """Create an empty release directory with pending metadata.

        Raises:
            OSError: the directory could not be created.
        """
        release_id = self.new_id()
        path = self.releases_dir / release_id
        path.mkdir(parents=True, exist_ok=False)
        release = Release(
            id=release_id,
            path=path,
            revision=revision,
            ref=ref,
            created_at=isoformat(self._clock()),
        )
        self.save(release)
        return release

    def save(self, release: Release) -> None:
        """Persist release metadata.

        Raises:
            OSError: the metadata file could not be written.
        """
        atomic_write_text(
            release.path / METADATA_FILE,
            json.dumps(release.to_dict(), indent=2) + "\n",
        )

    def mark(self, release: Release, status: ReleaseStatus) -> Release:
        """Record a validation status.

        Returns:
            The updated release.

        Raises:
            OSError: the metadata file could not be written.
        """
        updated = release.with_status(status)
        self.save(updated)
        return updated

    def mark_activated(self, release: Release) -> Release:
        """Stamp ``activated_at`` and clear any earlier rollback mark."""
        updated = replace(release, activated_at=isoformat(self._clock()), rolled_back_at=None)
        self.save(updated)
        return updated

    def mark_rolled_back(self, release: Release) -> Release:
        """Stamp ``rolled_back_at``, removing the release from rollback history."""
        updated = replace(release, rolled_back_at=isoformat(self._clock()))
        self.save(updated)
        return updated
