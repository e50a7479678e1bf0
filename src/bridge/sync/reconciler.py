"""Branch reconciliation against the downstream repository.

Before a downstream build is triggered, the per-PR test branch is brought
to the current head of the integration branch:

    exists?  ──yes──▶ read integration head ──▶ update test branch
       │
       no
       ▼
    read integration head ──▶ create test branch

Every step awaits the previous one. Failures never raise out of
``reconcile``: they are carried in the returned ReconcileResult, and when
the test branch could not be created the result falls back to the
integration branch itself so the tests still run (degraded mode).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.bridge.github.client import (
    GitHubAPIError,
    GitHubClient,
    ReferenceExistsError,
)
from src.bridge.sync.locks import KeyedLock

logger = logging.getLogger(__name__)


class ReconcileStage(str, Enum):
    """Step of the reconciliation sequence that failed."""

    CHECK_EXISTS = "check_exists"
    FETCH_INTEGRATION = "fetch_integration"
    UPDATE_BRANCH = "update_branch"
    CREATE_BRANCH = "create_branch"


class ReconcileError(Exception):
    """Recoverable reconciliation failure.

    Returned inside a ReconcileResult, never raised by ``reconcile``.

    Attributes:
        stage: Step that failed.
        branch: Branch the step was operating on.
        status_code: HTTP status from GitHub, if any.
        response_body: Response body from GitHub, if any.
    """

    def __init__(
        self,
        message: str,
        stage: ReconcileStage,
        branch: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        self.message = message
        self.stage = stage
        self.branch = branch
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)

    @classmethod
    def from_api_error(
        cls, stage: ReconcileStage, branch: str, error: GitHubAPIError
    ) -> "ReconcileError":
        return cls(
            message=error.message,
            stage=stage,
            branch=branch,
            status_code=error.status_code,
            response_body=error.response_body,
        )


@dataclass
class ReconcileResult:
    """Branch the downstream build should run against.

    Attributes:
        branch: The test branch, or the integration branch in degraded mode.
        error: Recoverable failure encountered on the way, if any.
        sha: Sha the branch was moved to, when known.
    """

    branch: str
    error: Optional[ReconcileError] = None
    sha: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class BranchReconciler:
    """Keeps per-PR test branches in step with the integration branch.

    Reconciliations of the same (project, branch) are serialised within
    the process. A create answered with "Reference already exists" (another
    process won the race) is handled as an existing branch.

    Attributes:
        github_client: Client for the downstream repository.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        locks: Optional[KeyedLock] = None,
    ):
        self.github_client = github_client
        self._locks = locks or KeyedLock()

    async def reconcile(
        self,
        project: str,
        desired_branch: str,
        integration_branch: str,
    ) -> ReconcileResult:
        """Make ``desired_branch`` point at the head of ``integration_branch``.

        Args:
            project: Downstream repository in "owner/name" form.
            desired_branch: Test branch name (e.g. "tests/feature-x").
            integration_branch: Branch to synchronize from (e.g. "develop").

        Returns:
            ReconcileResult naming the branch to build. ``error`` is set if
            any step failed.
        """
        async with self._locks.hold((project, desired_branch)):
            try:
                exists = await self.github_client.branch_exists(
                    project, desired_branch
                )
            except GitHubAPIError as e:
                # Unknown existence: do not guess, build the integration branch
                return self._degrade(
                    integration_branch,
                    ReconcileError.from_api_error(
                        ReconcileStage.CHECK_EXISTS, desired_branch, e
                    ),
                )

            try:
                integration_ref = await self.github_client.get_ref(
                    project, integration_branch
                )
            except GitHubAPIError as e:
                return self._degrade(
                    integration_branch,
                    ReconcileError.from_api_error(
                        ReconcileStage.FETCH_INTEGRATION, integration_branch, e
                    ),
                )

            if exists:
                return await self._update(
                    project, desired_branch, integration_ref.sha
                )
            return await self._create(
                project, desired_branch, integration_branch, integration_ref.sha
            )

    async def _update(
        self, project: str, desired_branch: str, sha: str
    ) -> ReconcileResult:
        try:
            await self.github_client.update_ref(project, desired_branch, sha)
        except GitHubAPIError as e:
            error = ReconcileError.from_api_error(
                ReconcileStage.UPDATE_BRANCH, desired_branch, e
            )
            logger.warning(
                "Unable to update existing branch",
                extra={
                    "branch": desired_branch,
                    "status_code": e.status_code,
                    "response_body": (e.response_body or "")[:500],
                },
            )
            return ReconcileResult(branch=desired_branch, error=error)

        logger.info(
            "Test branch updated",
            extra={"project": project, "branch": desired_branch, "sha": sha},
        )
        return ReconcileResult(branch=desired_branch, sha=sha)

    async def _create(
        self,
        project: str,
        desired_branch: str,
        integration_branch: str,
        sha: str,
    ) -> ReconcileResult:
        try:
            await self.github_client.create_ref(project, desired_branch, sha)
        except ReferenceExistsError:
            logger.info(
                "Test branch appeared concurrently, updating instead",
                extra={"project": project, "branch": desired_branch},
            )
            return await self._update(project, desired_branch, sha)
        except GitHubAPIError as e:
            return self._degrade(
                integration_branch,
                ReconcileError.from_api_error(
                    ReconcileStage.CREATE_BRANCH, desired_branch, e
                ),
            )

        logger.info(
            "Test branch created",
            extra={"project": project, "branch": desired_branch, "sha": sha},
        )
        return ReconcileResult(branch=desired_branch, sha=sha)

    def _degrade(
        self, integration_branch: str, error: ReconcileError
    ) -> ReconcileResult:
        logger.warning(
            "Branch reconciliation degraded, falling back to integration branch",
            extra={
                "stage": error.stage.value,
                "branch": error.branch,
                "fallback_branch": integration_branch,
                "status_code": error.status_code,
                "response_body": (error.response_body or "")[:500],
            },
        )
        return ReconcileResult(branch=integration_branch, error=error)
