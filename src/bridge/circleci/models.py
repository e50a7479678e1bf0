"""CircleCI build request and build result models.

CIBuildRequest is what the bridge sends when it triggers a downstream
build; CIBuildResult is what it reads back from the CircleCI completion
webhook. The ``build_parameters`` bag travels with the build, so the
callback carries the source sha and project id the trigger sent.
"""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


# Keys of the build_parameters bag shared with the downstream CircleCI config
BRANCH_NAME_PARAMETER = "BRANCHNAME"
SHA_PARAMETER = "sha"
PULL_REQUEST_PARAMETER = "pullRequestNum"
SOURCE_PROJECT_PARAMETER = "calypsoProject"


class BuildOutcome(str, Enum):
    """Outcome of a finished CircleCI build.

    CircleCI reports several outcomes (canceled, infrastructure_fail,
    timedout, no_tests, ...); everything other than success and failed is
    collapsed into OTHER.
    """

    SUCCESS = "success"
    FAILED = "failed"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: Any) -> "BuildOutcome":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class CIBuildRequest(BaseModel):
    """Parameters of a downstream test build.

    Attributes:
        target_branch: Downstream branch to build.
        sha: Head sha of the source pull request.
        pull_request_number: Number of the source pull request.
        source_project_id: Source repository ("owner/name").
    """

    model_config = ConfigDict(frozen=True)

    target_branch: str = Field(..., min_length=1)
    sha: str = Field(..., min_length=1)
    pull_request_number: int = Field(..., gt=0)
    source_project_id: str = Field(..., min_length=1)

    def to_build_parameters(self, content_hash_parameter: str) -> Dict[str, Any]:
        """Render the CircleCI ``build_parameters`` bag.

        The head sha is sent twice: as ``sha`` (read back by the callback)
        and under ``content_hash_parameter`` for the downstream job.
        """
        return {
            BRANCH_NAME_PARAMETER: self.target_branch,
            SHA_PARAMETER: self.sha,
            content_hash_parameter: self.sha,
            PULL_REQUEST_PARAMETER: self.pull_request_number,
            SOURCE_PROJECT_PARAMETER: self.source_project_id,
        }


class CIBuildResult(BaseModel):
    """A finished build addressed to this bridge.

    Attributes:
        outcome: success, failed or other.
        sha: Source sha the build was triggered for.
        build_url: Link to the build on CircleCI.
        source_branch: Downstream branch that was built.
        status_text: Raw CircleCI status string (e.g. "failed", "timedout").
        source_project_id: Source repository recorded in the build parameters.
    """

    model_config = ConfigDict(frozen=True)

    outcome: BuildOutcome
    sha: str = Field(..., min_length=1)
    build_url: str = ""
    source_branch: str = ""
    status_text: str = ""
    source_project_id: str = Field(..., min_length=1)
