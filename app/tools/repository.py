"""Repository context tools — read-only view of a linked GitHub repository.

Branch resolution order (short-circuits, never probes a name twice):

1. the branch the caller asked for (``requested``)
2. ``main``
3. ``master``
4. the repository's reported default branch (``default``), taken from the
   metadata response and trusted without another probe

If everything fails a single :class:`~infra.forge.BranchResolutionError`
lists every name that was tried.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel

from app.core.errors import ToolValidationError
from app.core.logging import get_logger
from app.core.state import BranchResolution, ToolResult
from infra.forge import BranchResolutionError, ForgeError, RepositoryReader

logger = get_logger("tools.repository")

_URL_PATTERN = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s?#]+)", re.IGNORECASE)
_SHORT_PATTERN = re.compile(r"^([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)$")

_FALLBACK_BRANCHES = ("main", "master")
_MAX_PER_PAGE = 100


class RepoRef(BaseModel):
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_repo_link(link: Any) -> RepoRef:
    """Parse ``https://github.com/owner/repo[.git]`` or ``owner/repo``."""
    if not isinstance(link, str) or not link.strip():
        raise ToolValidationError("repo_link must be a non-empty string", fields=["repo_link"])
    text = link.strip()
    match = _URL_PATTERN.search(text) or _SHORT_PATTERN.match(text)
    if match is None:
        raise ToolValidationError(f"Not a GitHub repository link: {text!r}", fields=["repo_link"])
    owner, name = match.group(1), match.group(2)
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        raise ToolValidationError(f"Not a GitHub repository link: {text!r}", fields=["repo_link"])
    return RepoRef(owner=owner, name=name)


def resolve_branch(client: RepositoryReader, repo: str, hint: str | None = None) -> BranchResolution:
    """Find the first existing branch in resolution order.

    Raises:
        BranchResolutionError: nothing resolved, or the metadata fetch failed.
        ForgeError: a probe failed for a reason other than "not found".
    """
    tried: list[str] = []
    candidates: list[tuple[str, str]] = []
    if hint and hint.strip():
        candidates.append((hint.strip(), "requested"))
    candidates.extend((name, name) for name in _FALLBACK_BRANCHES)

    for name, source in candidates:
        if name in tried:
            continue
        tried.append(name)
        try:
            head = client.get_branch(repo, name)
        except ForgeError as exc:
            if exc.status_code == 404:
                logger.debug("branch %s not found in %s", name, repo)
                continue
            raise
        logger.info("resolved %s → %s (%s)", repo, name, source)
        return BranchResolution(branch=name, source=source, tried=tried, tree_sha=head.tree_sha)

    try:
        default = client.get_repository(repo).default_branch
    except ForgeError as exc:
        raise BranchResolutionError(repo, tried) from exc
    if not default or default in tried:
        raise BranchResolutionError(repo, tried + ([default] if default else []))
    tried.append(default)
    logger.info("resolved %s → %s (default)", repo, default)
    return BranchResolution(branch=default, source="default", tried=tried)


class RepositoryTools:
    """Handlers for ``get_repo_structure`` and ``get_repo_commits``."""

    def __init__(self, client: RepositoryReader) -> None:
        self.client = client

    def structure(self, repo_link: Any, branch: str | None = None) -> ToolResult:
        ref = parse_repo_link(repo_link)
        resolution = resolve_branch(self.client, ref.full_name, branch)
        tree = self.client.get_tree(ref.full_name, resolution.tree_sha or resolution.branch, recursive=True)
        entries = [{"path": e.path, "type": e.type, "size": e.size} for e in tree.entries]
        return ToolResult.ok(
            "get_repo_structure",
            f"Listed {len(entries)} entries in {ref.full_name}@{resolution.branch}"
            + (" (truncated)" if tree.truncated else ""),
            repository=ref.full_name,
            branch=resolution.branch,
            branch_resolution=resolution.model_dump(),
            entries=entries,
            total_entries=len(entries),
            truncated=tree.truncated,
        )

    def commits(
        self,
        repo_link: Any,
        branch: str | None = None,
        page: int = 1,
        per_page: int = 30,
    ) -> ToolResult:
        ref = parse_repo_link(repo_link)
        page = max(1, page)
        per_page = max(1, min(per_page, _MAX_PER_PAGE))
        resolution = resolve_branch(self.client, ref.full_name, branch)
        commits = self.client.list_commits(ref.full_name, resolution.branch, page=page, per_page=per_page)
        return ToolResult.ok(
            "get_repo_commits",
            f"Fetched {len(commits)} commits from {ref.full_name}@{resolution.branch} (page {page})",
            repository=ref.full_name,
            branch=resolution.branch,
            branch_resolution=resolution.model_dump(),
            page=page,
            per_page=per_page,
            commits=[c.model_dump(mode="json") for c in commits],
            count=len(commits),
        )


