"""GitHub API client for refs and commit statuses.

This module provides a wrapper around the GitHub API for:
- Branch existence checks
- Creating, updating and deleting branch refs
- Posting commit statuses
"""

from src.bridge.github.client import (
    GitHubAPIError,
    GitHubClient,
    ReferenceExistsError,
)
from src.bridge.github.models import BranchRef, CommitState, CommitStatus

__all__ = [
    "BranchRef",
    "CommitState",
    "CommitStatus",
    "GitHubAPIError",
    "GitHubClient",
    "ReferenceExistsError",
]
