"""GitHub repository reader.

Implements :class:`~infra.forge.RepositoryReader` against the GitHub REST
API v3.  Authentication uses a personal access token (PAT) supplied via the
``GITHUB_TOKEN`` environment variable / config key.

Usage::

    from infra.github_client import get_github_client
    client = get_github_client()
    head = client.get_branch("owner/repo", "main")
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from infra.forge import BranchInfo, CommitInfo, ForgeError, RepoTree, RepositoryInfo, TreeEntry

_GITHUB_API = "https://api.github.com"
_USER_AGENT = "docwright"


def _parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp returned by GitHub (``2024-01-02T03:04:05Z``)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.rstrip("Z")).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class GitHubClient:
    """GitHub REST API v3 client (read-only).

    Args:
        token: GitHub personal access token.  Pass an empty string to make
               unauthenticated requests (rate-limited to 60 req/h).
        base_url: API base URL.  Override in tests or for GitHub Enterprise.
        timeout: HTTP timeout in seconds (default 30).
    """

    def __init__(
        self,
        token: str = "",
        base_url: str = _GITHUB_API,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": _USER_AGENT,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(headers=headers, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise ForgeError(
                f"GitHub GET {path} failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise ForgeError(f"GitHub GET {path} network error: {exc}") from exc

    def _repo_path(self, repo: str) -> str:
        """Return URL-encoded ``/repos/owner/name``."""
        return f"/repos/{quote(repo, safe='/')}"

    @staticmethod
    def _commit_from_dict(data: dict[str, Any]) -> CommitInfo:
        commit = data.get("commit") or {}
        author = commit.get("author") or {}
        message = commit.get("message") or ""
        return CommitInfo(
            sha=(data.get("sha") or "")[:7],
            message=message.split("\n", 1)[0],
            author=author.get("name", ""),
            email=author.get("email", ""),
            date=_parse_dt(author.get("date")),
            url=data.get("html_url", ""),
        )

    # ------------------------------------------------------------------
    # RepositoryReader implementation
    # ------------------------------------------------------------------

    def get_repository(self, repo: str) -> RepositoryInfo:
        """Fetch repository metadata.

        Args:
            repo: ``owner/name``.
        """
        data = self._get(self._repo_path(repo))
        return RepositoryInfo(
            full_name=data.get("full_name", repo),
            default_branch=data.get("default_branch") or "",
            html_url=data.get("html_url", ""),
            private=bool(data.get("private", False)),
        )

    def get_default_branch(self, repo: str) -> str:
        """Return the default branch name (e.g. ``"main"``) for a repo."""
        return self.get_repository(repo).default_branch or "main"

    def get_branch(self, repo: str, branch: str) -> BranchInfo:
        """Fetch a branch head with its commit and root tree SHAs.

        Args:
            repo:   ``owner/name``.
            branch: Branch name.
        """
        data = self._get(f"{self._repo_path(repo)}/branches/{quote(branch, safe='')}")
        commit = data.get("commit") or {}
        try:
            tree_sha = commit["commit"]["tree"]["sha"]
        except (KeyError, TypeError) as exc:
            raise ForgeError(f"GitHub branch {branch!r} response has no tree SHA") from exc
        return BranchInfo(name=data.get("name", branch), commit_sha=commit.get("sha", ""), tree_sha=tree_sha)

    def get_tree(self, repo: str, tree_sha: str, recursive: bool = True) -> RepoTree:
        """Fetch a git tree.

        Args:
            repo:      ``owner/name``.
            tree_sha:  Tree SHA (usually from :meth:`get_branch`).
            recursive: Flatten all subtrees into one listing.
        """
        params = {"recursive": "1"} if recursive else None
        data = self._get(f"{self._repo_path(repo)}/git/trees/{quote(tree_sha, safe='')}", params=params)
        entries = [
            TreeEntry(path=item["path"], type=item.get("type", ""), size=item.get("size"), sha=item.get("sha", ""))
            for item in data.get("tree", [])
        ]
        return RepoTree(sha=data.get("sha", tree_sha), entries=entries, truncated=bool(data.get("truncated", False)))

    def list_commits(self, repo: str, branch: str, page: int = 1, per_page: int = 30) -> list[CommitInfo]:
        """List commits on *branch*, newest first.

        Args:
            repo:     ``owner/name``.
            branch:   Branch name passed as ``sha``.
            page:     1-based page number.
            per_page: Page size (GitHub caps this at 100).
        """
        data = self._get(
            f"{self._repo_path(repo)}/commits",
            params={"sha": branch, "page": page, "per_page": per_page},
        )
        return [self._commit_from_dict(item) for item in data]

    def __repr__(self) -> str:  # pragma: no cover
        return f"GitHubClient(base_url={self._base_url!r})"


def get_github_client() -> GitHubClient:
    """Build a client from ``GITHUB_TOKEN`` / ``GITHUB_API_URL``."""
    from app.core.config import get_settings

    settings = get_settings()
    return GitHubClient(token=settings.github_token, base_url=settings.github_api_url)
