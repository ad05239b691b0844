"""Revision source: fetch, resolve, diff and export source trees.

- RevisionSource: protocol the deployment services depend on
- GitRevisionSource: implementation backed by the host's git clone
- InMemoryRevisionSource: in-memory implementation for tests and dry runs
"""

from __future__ import annotations

import fnmatch
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

from relctl.core.result import Err, Ok, Result
from relctl.git.repository import Repository

from .errors import RevisionError

__all__ = [
    "DEV_EXCLUDES",
    "GitRevisionSource",
    "InMemoryRevisionSource",
    "RevisionSource",
    "is_excluded",
]

# Development-only artifacts never copied into a release
DEV_EXCLUDES: tuple[str, ...] = (
    ".git",
    "__pycache__",
    "*.pyc",
    "*.pyo",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".tox",
    ".coverage",
)


def is_excluded(path: str, extra: tuple[str, ...] = ()) -> bool:
    """True if ``path`` (posix, relative) is a development artifact.

    Built-in patterns match any single path component; ``extra`` patterns
    also match against the whole relative path (``docs/_build/*``).
    """
    parts = PurePosixPath(path).parts
    for part in parts:
        if any(fnmatch.fnmatchcase(part, pat) for pat in (*DEV_EXCLUDES, *extra)):
            return True
    return any(fnmatch.fnmatchcase(path, pat) for pat in extra)


@runtime_checkable
class RevisionSource(Protocol):
    def fetch(self, ref: str) -> Result[None, RevisionError]: ...

    def resolve(self, ref: str) -> Result[str, RevisionError]: ...

    def diff(self, base: str, head: str) -> Result[frozenset[str], RevisionError]: ...

    def export(
        self, revision: str, dest: Path, exclude: tuple[str, ...] = ()
    ) -> Result[None, RevisionError]: ...


class GitRevisionSource:
    """Revisions from a local clone, refreshed from ``remote`` before each deploy.

    Branch names resolve to the remote-tracking branch first, so a stale
    local branch in the clone never shadows what was pushed.
    """

    def __init__(self, repo: Repository, *, remote: str = "origin") -> None:
        self._repo = repo
        self._remote = remote

    def fetch(self, ref: str) -> Result[None, RevisionError]:
        if not self._repo.exists():
            return Err(
                RevisionError(
                    ref=ref,
                    message=f"no git clone at {self._repo.path}",
                    hint=f"git clone <url> {self._repo.path}",
                )
            )
        match self._repo.fetch(self._remote):
            case Err(e):
                return Err(RevisionError(ref=ref, message=e.message))
            case Ok(_):
                return Ok(None)

    def resolve(self, ref: str) -> Result[str, RevisionError]:
        for candidate in (f"{self._remote}/{ref}", ref):
            result = self._repo.rev_parse(candidate)
            if isinstance(result, Ok):
                return Ok(result.value)
        return Err(RevisionError(ref=ref, message=f"unknown revision: {ref}"))

    def diff(self, base: str, head: str) -> Result[frozenset[str], RevisionError]:
        match self._repo.changed_paths(base, head):
            case Err(e):
                return Err(RevisionError(ref=head, message=e.message))
            case Ok(paths):
                return Ok(paths)

    def export(
        self, revision: str, dest: Path, exclude: tuple[str, ...] = ()
    ) -> Result[None, RevisionError]:
        try:
            dest.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryDirectory(prefix=".export-", dir=dest.parent) as tmp:
                tar_path = Path(tmp) / "tree.tar"
                match self._repo.archive(revision, tar_path):
                    case Err(e):
                        return Err(RevisionError(ref=revision, message=e.message))
                    case Ok(_):
                        pass
                with tarfile.open(tar_path) as tar:
                    members = [m for m in tar.getmembers() if not is_excluded(m.name, exclude)]
                    tar.extractall(dest, members=members, filter="data")
        except (OSError, tarfile.TarError) as e:
            return Err(RevisionError(ref=revision, message=f"export failed: {e}"))
        return Ok(None)


def _empty_trees() -> dict[str, dict[str, str]]:
    return {}


def _empty_refs() -> dict[str, str]:
    return {}


@dataclass
class InMemoryRevisionSource:
    """Revision source holding trees as ``{sha: {path: content}}``.

    Use ``commit`` to add a revision and move a ref to it.
    """

    trees: dict[str, dict[str, str]] = field(default_factory=_empty_trees)
    refs: dict[str, str] = field(default_factory=_empty_refs)
    fetch_error: str | None = None
    fetches: int = 0

    def commit(self, ref: str, sha: str, files: dict[str, str]) -> str:
        self.trees[sha] = dict(files)
        self.refs[ref] = sha
        return sha

    def fetch(self, ref: str) -> Result[None, RevisionError]:
        self.fetches += 1
        if self.fetch_error:
            return Err(RevisionError(ref=ref, message=self.fetch_error))
        return Ok(None)

    def resolve(self, ref: str) -> Result[str, RevisionError]:
        if ref in self.refs:
            return Ok(self.refs[ref])
        if ref in self.trees:
            return Ok(ref)
        return Err(RevisionError(ref=ref, message=f"unknown revision: {ref}"))

    def diff(self, base: str, head: str) -> Result[frozenset[str], RevisionError]:
        if base not in self.trees or head not in self.trees:
            return Err(RevisionError(ref=head, message=f"cannot diff {base}..{head}"))
        old, new = self.trees[base], self.trees[head]
        changed = {p for p in old.keys() | new.keys() if old.get(p) != new.get(p)}
        return Ok(frozenset(changed))

    def export(
        self, revision: str, dest: Path, exclude: tuple[str, ...] = ()
    ) -> Result[None, RevisionError]:
        tree = self.trees.get(revision)
        if tree is None:
            return Err(RevisionError(ref=revision, message=f"unknown revision: {revision}"))
        for rel, content in tree.items():
            if is_excluded(rel, exclude):
                continue
            target = dest / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return Ok(None)
