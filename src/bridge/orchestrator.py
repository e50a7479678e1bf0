"""Build orchestrator connecting pull request events to downstream builds.

Drives an accepted pull request event through the full pipeline:
filter → branch reconciliation → CircleCI trigger → pending commit status.

Each remote step awaits the previous one. A failure ends the pipeline for
that event only: it is logged with the remote response and emitted as an
ERROR event, never retried, and never raised to the webhook layer. Side
effects of earlier steps are not rolled back.
"""

import logging
from typing import Optional

from src.bridge.circleci.client import CircleCIAPIError, CircleCIClient
from src.bridge.circleci.models import CIBuildRequest
from src.bridge.config import BridgeSettings
from src.bridge.events.emitter import EventEmitter
from src.bridge.events.models import BridgeEvent, EventType
from src.bridge.github.client import GitHubAPIError, GitHubClient
from src.bridge.github.models import CommitState, CommitStatus
from src.bridge.sync.filter import evaluate_event
from src.bridge.sync.reconciler import BranchReconciler, ReconcileResult
from src.bridge.webhook.models import PullRequestEvent

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Turns pull request events into downstream CircleCI builds.

    Repeated identical events are not deduplicated: each accepted delivery
    reconciles the branch, triggers a build and posts a status again.

    Attributes:
        settings: Bridge configuration.
        github_client: GitHub API client (refs and statuses).
        circleci_client: CircleCI API client.
        reconciler: Test branch reconciler.
        event_emitter: Emits bridge events for observability.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        github_client: GitHubClient,
        circleci_client: CircleCIClient,
        reconciler: BranchReconciler,
        event_emitter: EventEmitter,
    ):
        self.settings = settings
        self.github_client = github_client
        self.circleci_client = circleci_client
        self.reconciler = reconciler
        self.event_emitter = event_emitter

    async def on_pull_request_event(self, event: PullRequestEvent) -> None:
        """Handle one pull request delivery end to end.

        Args:
            event: Parsed GitHub pull_request event.
        """
        pull_request_id = event.pull_request_id

        decision = evaluate_event(event, self.settings)
        if not decision.accepted:
            logger.info(
                "Ignoring pull request",
                extra={
                    "pull_request": pull_request_id,
                    "reason": decision.reason.value,
                    "actor": event.actor_login,
                    "head_label": event.head_label,
                    "pr_state": event.state,
                },
            )
            await self._emit(
                EventType.FILTERED,
                pull_request_id,
                event.repository_full_name,
                reason=decision.reason.value,
            )
            return

        logger.info(
            "Executing %s tests for %s branch: '%s'",
            self.settings.downstream_name,
            event.repository_full_name,
            event.head_ref,
        )

        reconciled = await self._reconcile(event)

        build_url = await self._trigger_build(event, reconciled)
        if build_url is None:
            return

        await self._post_pending_status(event, build_url)

    async def _reconcile(self, event: PullRequestEvent) -> ReconcileResult:
        """Bring the test branch up to date; never raises."""
        downstream = self.settings.downstream_project_id
        result = await self.reconciler.reconcile(
            downstream,
            self.settings.test_branch_name(event.head_ref),
            self.settings.integration_branch,
        )

        if result.degraded:
            await self._emit(
                EventType.DEGRADED,
                event.pull_request_id,
                downstream,
                branch=result.branch,
                stage=result.error.stage.value,
                status_code=result.error.status_code,
                error_message=result.error.message,
            )
        else:
            await self._emit(
                EventType.RECONCILED,
                event.pull_request_id,
                downstream,
                branch=result.branch,
                sha=result.sha,
            )
        return result

    async def _trigger_build(
        self, event: PullRequestEvent, reconciled: ReconcileResult
    ) -> Optional[str]:
        """Start the downstream build. Returns its URL, or None on failure."""
        downstream = self.settings.downstream_project_id
        request = CIBuildRequest(
            target_branch=reconciled.branch,
            sha=event.head_sha,
            pull_request_number=event.number,
            source_project_id=self.settings.source_project_id,
        )

        try:
            build_url = await self.circleci_client.trigger_build(downstream, request)
        except CircleCIAPIError as e:
            logger.error(
                "Something went wrong with executing %s tests",
                self.settings.downstream_name,
                extra={
                    "pull_request": event.pull_request_id,
                    "branch": reconciled.branch,
                    "status_code": e.status_code,
                    "response_body": (e.response_body or "")[:500],
                },
            )
            await self._emit(
                EventType.ERROR,
                event.pull_request_id,
                downstream,
                operation="trigger_build",
                status_code=e.status_code,
                error_message=e.message,
            )
            return None

        await self._emit(
            EventType.BUILD_TRIGGERED,
            event.pull_request_id,
            downstream,
            branch=reconciled.branch,
            build_url=build_url,
            degraded=reconciled.degraded,
        )
        return build_url

    async def _post_pending_status(
        self, event: PullRequestEvent, build_url: str
    ) -> None:
        source = self.settings.source_project_id
        status = CommitStatus(
            state=CommitState.PENDING,
            description=(
                f"The {self.settings.downstream_name} tests are running "
                "against your PR"
            ),
            target_url=build_url,
            context=self.settings.commit_status_context,
        )

        try:
            await self.github_client.create_commit_status(
                source, event.head_sha, status
            )
        except GitHubAPIError as e:
            # The build keeps running; the PR just shows no status for it
            await self._emit(
                EventType.ERROR,
                event.pull_request_id,
                source,
                operation="post_status",
                status_code=e.status_code,
                error_message=e.message,
            )
            return

        await self._emit(
            EventType.STATUS_POSTED,
            event.head_sha,
            source,
            state=status.state.value,
            pull_request=event.pull_request_id,
        )

    async def _emit(
        self, event_type: EventType, subject: str, repository: str, **details
    ) -> None:
        await self.event_emitter.emit(
            BridgeEvent(
                event_type=event_type,
                subject=subject,
                repository=repository,
                details=details,
            )
        )
