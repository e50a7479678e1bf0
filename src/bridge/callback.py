"""CircleCI callback processing.

Turns a finished downstream build into a commit status on the source
pull request:

    | outcome | commit state | description                     |
    |---------|--------------|---------------------------------|
    | success | success      | fixed success message           |
    | failed  | failure      | "<name> test status: <status>"  |
    | other   | error        | "<name> test status: <status>"  |

After a passing build of a test branch, the test branch is deleted. The
CircleCI webhook delivers every build of the downstream project, so
callbacks that were not triggered by this bridge are expected and ignored.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from src.bridge.circleci.models import BuildOutcome, CIBuildResult
from src.bridge.config import BridgeSettings
from src.bridge.events.emitter import EventEmitter
from src.bridge.events.models import BridgeEvent, EventType
from src.bridge.github.client import GitHubAPIError, GitHubClient
from src.bridge.github.models import CommitState, CommitStatus
from src.bridge.webhook.handler import WebhookHandler

logger = logging.getLogger(__name__)


@dataclass
class CallbackOutcome:
    """What handling one callback did.

    Attributes:
        applicable: False when the callback was not addressed to us.
        state: Commit state derived from the build outcome.
        status_posted: True when GitHub accepted the status.
        branch_deleted: True when the test branch was deleted.
        reason: Why the callback was ignored, if it was.
    """

    applicable: bool
    state: Optional[CommitState] = None
    status_posted: bool = False
    branch_deleted: bool = False
    reason: Optional[str] = None


def map_outcome(
    result: CIBuildResult, downstream_name: str
) -> Tuple[CommitState, str]:
    """Map a build outcome to a commit state and description."""
    if result.outcome == BuildOutcome.SUCCESS:
        return (
            CommitState.SUCCESS,
            f"Your PR passed the {downstream_name} tests on CircleCI!",
        )
    description = f"{downstream_name} test status: {result.status_text}"
    if result.outcome == BuildOutcome.FAILED:
        return CommitState.FAILURE, description
    return CommitState.ERROR, description


class BuildCallbackProcessor:
    """Reports CircleCI build outcomes back to GitHub.

    Attributes:
        settings: Bridge configuration.
        github_client: GitHub API client.
        webhook_handler: Validates raw callback bodies.
        event_emitter: Emits bridge events for observability.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        github_client: GitHubClient,
        webhook_handler: WebhookHandler,
        event_emitter: EventEmitter,
    ):
        self.settings = settings
        self.github_client = github_client
        self.webhook_handler = webhook_handler
        self.event_emitter = event_emitter

    async def on_build_callback(
        self, payload: Union[bytes, str, Dict[str, Any]]
    ) -> CallbackOutcome:
        """Handle one CircleCI webhook delivery.

        Never raises: foreign or malformed payloads are ignored, and
        GitHub failures are logged.

        Args:
            payload: Raw request body or decoded JSON object.
        """
        parsed = self.webhook_handler.parse_build_callback(payload)
        if not parsed.applicable:
            logger.info(
                "Non-CircleCI packet received",
                extra={"reason": parsed.reason},
            )
            await self._emit(
                EventType.IGNORED_CALLBACK,
                "circleci",
                reason=parsed.reason,
            )
            return CallbackOutcome(applicable=False, reason=parsed.reason)

        return await self.process_result(parsed.result)

    async def process_result(self, result: CIBuildResult) -> CallbackOutcome:
        """Post the commit status for a build, then clean up its branch."""
        state, description = map_outcome(result, self.settings.downstream_name)
        outcome = CallbackOutcome(applicable=True, state=state)

        status = CommitStatus(
            state=state,
            description=description,
            target_url=result.build_url or None,
            context=self.settings.commit_status_context,
        )
        outcome.status_posted = await self._post_status(result, status)

        if state == CommitState.SUCCESS and self.settings.is_test_branch(
            result.source_branch
        ):
            outcome.branch_deleted = await self._delete_branch(
                result.source_branch
            )

        return outcome

    async def _post_status(
        self, result: CIBuildResult, status: CommitStatus
    ) -> bool:
        source = self.settings.source_project_id
        try:
            await self.github_client.create_commit_status(
                source, result.sha, status
            )
        except GitHubAPIError as e:
            await self._emit(
                EventType.ERROR,
                result.sha,
                source,
                operation="post_status",
                status_code=e.status_code,
                error_message=e.message,
            )
            return False

        await self._emit(
            EventType.STATUS_POSTED,
            result.sha,
            source,
            state=status.state.value,
            build_url=result.build_url,
        )
        return True

    async def _delete_branch(self, branch: str) -> bool:
        downstream = self.settings.downstream_project_id
        try:
            await self.github_client.delete_ref(downstream, branch)
        except GitHubAPIError as e:
            logger.error(
                "Branch delete failed",
                extra={
                    "branch": branch,
                    "status_code": e.status_code,
                    "response_body": (e.response_body or "")[:500],
                },
            )
            await self._emit(
                EventType.ERROR,
                branch,
                downstream,
                operation="delete_branch",
                status_code=e.status_code,
                error_message=e.message,
            )
            return False

        await self._emit(EventType.BRANCH_DELETED, branch, downstream)
        return True

    async def _emit(
        self,
        event_type: EventType,
        subject: str,
        repository: str = "",
        **details,
    ) -> None:
        await self.event_emitter.emit(
            BridgeEvent(
                event_type=event_type,
                subject=subject,
                repository=repository,
                details=details,
            )
        )
