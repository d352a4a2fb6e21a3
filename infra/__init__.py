"""docwright infrastructure layer — document store and repository clients.

All external communication (the document service, GitHub) goes through
this package.

Quick start::

    from infra import get_document_store, get_github_client

    store = get_document_store()
    record = store.get("doc-1")
    head = get_github_client().get_branch("owner/repo", "main")
"""

from infra.document_store import (
    DocumentRecord,
    DocumentStore,
    DocumentStoreError,
    HttpDocumentStore,
    InMemoryDocumentStore,
    get_document_store,
)
from infra.forge import (
    BranchInfo,
    BranchResolutionError,
    CommitInfo,
    ForgeError,
    RepositoryInfo,
    RepositoryReader,
    RepoTree,
    TreeEntry,
)
from infra.github_client import GitHubClient, get_github_client

__all__ = [
    # Document store
    "DocumentRecord",
    "DocumentStore",
    "DocumentStoreError",
    "HttpDocumentStore",
    "InMemoryDocumentStore",
    "get_document_store",
    # Repository protocol & models
    "RepositoryReader",
    "RepositoryInfo",
    "BranchInfo",
    "TreeEntry",
    "RepoTree",
    "CommitInfo",
    "ForgeError",
    "BranchResolutionError",
    # Clients
    "GitHubClient",
    "get_github_client",
]
