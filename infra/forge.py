"""Repository read interface — protocol and shared data models.

All code that needs repository context (file tree, commit history) must go
through a ``RepositoryReader`` implementation.  Direct HTTP calls to forge
APIs outside this package are not allowed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class RepositoryInfo(BaseModel):
    """Repository metadata relevant to branch resolution."""

    full_name: str
    default_branch: str = ""
    html_url: str = ""
    private: bool = False


class BranchInfo(BaseModel):
    """A branch head: the commit it points at and that commit's root tree."""

    name: str
    commit_sha: str
    tree_sha: str


class TreeEntry(BaseModel):
    path: str
    type: str                      # "blob" | "tree" | "commit"
    size: int | None = None
    sha: str = ""


class RepoTree(BaseModel):
    sha: str
    entries: list[TreeEntry] = Field(default_factory=list)
    truncated: bool = False


class CommitInfo(BaseModel):
    sha: str
    message: str = ""
    author: str = ""
    email: str = ""
    date: datetime | None = None
    url: str = ""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class RepositoryReader(Protocol):
    """Read-only repository operations used by the repository tools.

    All methods are synchronous.  Async callers should run them in a thread
    pool (e.g. ``asyncio.to_thread``).
    """

    def get_repository(self, repo: str) -> RepositoryInfo:
        """Fetch repository metadata.

        Args:
            repo: ``owner/name``.

        Raises:
            ForgeError: on any HTTP or parsing error.
        """
        ...

    def get_branch(self, repo: str, branch: str) -> BranchInfo:
        """Fetch a branch head.

        Raises:
            ForgeError: with ``status_code == 404`` when the branch does not exist.
        """
        ...

    def get_tree(self, repo: str, tree_sha: str, recursive: bool = True) -> RepoTree:
        """Fetch a git tree, optionally flattened recursively."""
        ...

    def list_commits(self, repo: str, branch: str, page: int = 1, per_page: int = 30) -> list[CommitInfo]:
        """List commits reachable from *branch*, newest first."""
        ...


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ForgeError(Exception):
    """Raised for any forge API error (HTTP errors, missing fields, …)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __repr__(self) -> str:  # pragma: no cover
        return f"{type(self).__name__}({self.args[0]!r}, status_code={self.status_code})"


class BranchResolutionError(ForgeError):
    """No candidate branch could be resolved."""

    def __init__(self, repo: str, tried: list[str]) -> None:
        names = ", ".join(tried) if tried else "(none)"
        super().__init__(f"Could not resolve a branch for {repo}; tried: {names}", status_code=404)
        self.repo = repo
        self.tried = list(tried)
