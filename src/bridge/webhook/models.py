"""Webhook event models for the bridge.

This module defines the data models for inbound webhook deliveries:
- PullRequestEvent: a parsed GitHub ``pull_request`` delivery
- CallbackParseResult: the tagged outcome of validating a CircleCI
  completion callback

The models use Pydantic for validation, consistent with the bridge's
configuration approach in config.py.
"""

from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.bridge.circleci.models import CIBuildResult


class PullRequestAction(str, Enum):
    """GitHub pull_request actions the bridge distinguishes.

    Attributes:
        LABELED: A label was added to the PR. Triggers a run when the
                 added label is the trigger label.
        SYNCHRONIZE: New commits were pushed to the PR head. Triggers a run
                     when the PR already carries the trigger label.
        OTHER: Any other action (opened, closed, edited, ...). Never
               triggers a run.
    """

    LABELED = "labeled"
    SYNCHRONIZE = "synchronize"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: Optional[str]) -> "PullRequestAction":
        if value == cls.LABELED.value:
            return cls.LABELED
        if value == cls.SYNCHRONIZE.value:
            return cls.SYNCHRONIZE
        return cls.OTHER


class PullRequestEvent(BaseModel):
    """Parsed GitHub pull_request webhook event.

    Built once per delivery and never mutated.

    Attributes:
        number: The pull request number.
        state: PR state as reported by GitHub ("open", "closed").
        actor_login: Login of the user that caused the delivery.
        head_label: Head label in "owner:ref" form; the owner reveals forks.
        head_ref: Head branch name.
        head_sha: Head commit sha; commit statuses are posted here.
        repository_full_name: Repository in "owner/name" form.
        action: labeled, synchronize or other.
        label_name: Name of the added label, present only for labeled.
        current_labels: Labels on the PR at delivery time.
    """

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0)
    state: str
    actor_login: str
    head_label: str
    head_ref: str = Field(..., min_length=1)
    head_sha: str = Field(..., min_length=1)
    repository_full_name: str
    action: PullRequestAction
    label_name: Optional[str] = None
    current_labels: FrozenSet[str] = Field(default_factory=frozenset)

    @property
    def pull_request_id(self) -> str:
        """Canonical identifier, "{owner}/{repo}#{number}"."""
        return f"{self.repository_full_name}#{self.number}"

    def has_label(self, label_name: str) -> bool:
        return label_name in self.current_labels


class CallbackStatus(str, Enum):
    """Tag of a CallbackParseResult."""

    APPLICABLE = "applicable"
    NOT_APPLICABLE = "not_applicable"


class CallbackParseResult(BaseModel):
    """Outcome of validating a CircleCI callback body.

    Either carries a CIBuildResult addressed to this bridge, or marks the
    delivery as not applicable with a short reason.
    """

    model_config = ConfigDict(frozen=True)

    status: CallbackStatus
    result: Optional[CIBuildResult] = None
    reason: Optional[str] = None

    @property
    def applicable(self) -> bool:
        return self.status == CallbackStatus.APPLICABLE

    @classmethod
    def accept(cls, result: CIBuildResult) -> "CallbackParseResult":
        return cls(status=CallbackStatus.APPLICABLE, result=result)

    @classmethod
    def ignore(cls, reason: str) -> "CallbackParseResult":
        return cls(status=CallbackStatus.NOT_APPLICABLE, reason=reason)
