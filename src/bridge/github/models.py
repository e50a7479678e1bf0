"""Data models for the GitHub refs and commit status APIs.

The bridge keeps no copy of remote state: a BranchRef is only the answer
to a single read, and a CommitStatus is a write-only projection posted to
GitHub.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CommitState(str, Enum):
    """States accepted by the GitHub commit status API."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class BranchRef(BaseModel):
    """A branch name and the sha it points at."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    sha: str = Field(..., min_length=1)

    @classmethod
    def from_ref_response(cls, name: str, data: Dict[str, Any]) -> "BranchRef":
        """Build a BranchRef from a ``GET /git/refs/heads/{name}`` body.

        Args:
            name: Branch name that was requested.
            data: Parsed JSON body from GitHub.

        Raises:
            KeyError, TypeError: If the body has no ``object.sha``.
        """
        return cls(name=name, sha=data["object"]["sha"])


class CommitStatus(BaseModel):
    """Commit status posted to ``POST /repos/{repo}/statuses/{sha}``.

    Attributes:
        state: pending, success, failure or error.
        description: Short human readable summary shown on the PR.
        target_url: Link to the CI build.
        context: Fixed identifier of this bridge (e.g. "ci/wp-desktop").
    """

    model_config = ConfigDict(frozen=True)

    state: CommitState
    description: str = ""
    target_url: Optional[str] = None
    context: str = Field(..., min_length=1)

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the JSON body expected by GitHub."""
        payload: Dict[str, Any] = {
            "state": self.state.value,
            "description": self.description,
            "context": self.context,
        }
        if self.target_url:
            payload["target_url"] = self.target_url
        return payload
