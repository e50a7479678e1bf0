"""Bridge event models for observability.

This module defines the data models for bridge events:
- EventType: Enum of all event types emitted by the bridge
- BridgeEvent: Structured event with all required metadata

Every handled delivery ends in at least one event, so filtered, degraded,
failed and ignored deliveries can be counted and told apart.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the bridge.

    Attributes:
        FILTERED: A pull request event was skipped by the event filter.
        RECONCILED: The test branch was created or updated.
        DEGRADED: Reconciliation failed; the build targets a fallback branch.
        BUILD_TRIGGERED: A downstream CircleCI build was started.
        STATUS_POSTED: A commit status was written to GitHub.
        BRANCH_DELETED: A test branch was removed after a passing build.
        IGNORED_CALLBACK: A CI callback was not addressed to this bridge.
        ERROR: A remote call failed.
    """

    FILTERED = "filtered"
    RECONCILED = "reconciled"
    DEGRADED = "degraded"
    BUILD_TRIGGERED = "build_triggered"
    STATUS_POSTED = "status_posted"
    BRANCH_DELETED = "branch_deleted"
    IGNORED_CALLBACK = "ignored_callback"
    ERROR = "error"


class BridgeEvent(BaseModel):
    """Structured event emitted by the bridge.

    Attributes:
        event_type: The category of event.
        subject: What the event is about: a pull request id
                 ("owner/repo#42"), a commit sha or a branch name.
        repository: Repository the event concerns ("owner/repo").
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        FILTERED: reason
        RECONCILED / DEGRADED: branch, stage, status_code
        BUILD_TRIGGERED: branch, build_url
        STATUS_POSTED: state, sha
        ERROR: operation, status_code, error_message
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    subject: str = Field(
        ...,
        min_length=1,
        description="Pull request id, commit sha or branch the event is about",
    )

    repository: str = Field(
        default="",
        description='Repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging.

        Example:
            >>> event = BridgeEvent(
            ...     event_type=EventType.ERROR,
            ...     subject="Automattic/wp-calypso#42",
            ...     details={"operation": "trigger_build"},
            ... )
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "subject": self.subject,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
