"""Git access for the deploy host's source clone."""

from relctl.git.repository import GitError, Repository

__all__ = ["GitError", "Repository"]
