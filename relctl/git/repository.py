"""Git repository abstraction.

The deploy host keeps a plain clone under ``<root>/repo``. Releases are
never built from its working tree: revisions are exported with
``git archive`` so the clone's checkout state does not matter.

Usage:
    repo = Repository(layout.repo_dir)
    match repo.rev_parse("origin/main"):
        case Ok(sha):
            print(sha)
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from relctl.core.result import Err, Ok, Result
from relctl.core.timeouts import GIT_NETWORK_TIMEOUT_SECONDS, GIT_TIMEOUT_SECONDS
from relctl.platform.process import ProcessError
from relctl.platform.process import run as run_process

__all__ = ["GitError", "Repository"]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


class Repository:
    """Git operations on a single clone. All fallible methods return Results."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return (self.path / ".git").exists()

    def fetch(self, remote: str) -> Result[None, GitError]:
        """Fetch branches and tags from ``remote``."""
        result = self._run(["fetch", "--prune", "--tags", remote])
        match result:
            case Err(e):
                return Err(self._error("fetch", e, "fetch failed"))
            case Ok(_):
                return Ok(None)

    def rev_parse(self, ref: str) -> Result[str, GitError]:
        """Resolve ``ref`` to a full commit sha."""
        result = self._run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse", e, f"unknown revision: {ref}"))
            case Ok(stdout):
                return Ok(stdout.strip())

    def changed_paths(self, base: str, head: str) -> Result[frozenset[str], GitError]:
        """Paths that differ between two commits.

        Renames are reported as a delete plus an add, so both the old and the
        new path are in the set.
        """
        result = self._run(["diff", "--name-only", "--no-renames", "-z", base, head])
        match result:
            case Err(e):
                return Err(self._error("diff", e, "diff failed"))
            case Ok(stdout):
                return Ok(frozenset(p for p in stdout.split("\0") if p))

    def archive(self, sha: str, dest: Path) -> Result[Path, GitError]:
        """Write the tree of ``sha`` as a tar file at ``dest``."""
        result = self._run(["archive", "--format=tar", "-o", str(dest), sha])
        match result:
            case Err(e):
                return Err(self._error("archive", e, "archive failed"))
            case Ok(_):
                return Ok(dest)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        command = args[0] if args else ""
        timeout = (
            GIT_NETWORK_TIMEOUT_SECONDS if command in {"fetch", "clone"} else GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    @staticmethod
    def _error(command: str, e: ProcessError, fallback: str) -> GitError:
        return GitError(
            command=command,
            message=e.stderr.strip() or fallback,
            returncode=e.returncode,
        )
