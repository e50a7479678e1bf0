"""Decide whether a pull request event should trigger downstream tests.

The filter is a pure function of the event and the settings. Rejections
are routine (most deliveries are not for us) and are reported as a
FilterReason rather than as errors.
"""

from enum import Enum
from typing import NamedTuple

from src.bridge.config import BridgeSettings
from src.bridge.webhook.models import PullRequestAction, PullRequestEvent


class FilterReason(str, Enum):
    """Why an event was accepted or skipped."""

    ACCEPTED = "accepted"
    ACTOR_NOT_ALLOWED = "actor_not_allowed"
    FOREIGN_REPOSITORY = "foreign_repository"
    NOT_OPEN = "not_open"
    FORK = "fork"
    LABEL_NOT_ADDED = "label_not_added"
    LABEL_NOT_PRESENT = "label_not_present"
    UNSUPPORTED_ACTION = "unsupported_action"


class FilterDecision(NamedTuple):
    accepted: bool
    reason: FilterReason


def evaluate_event(
    event: PullRequestEvent, settings: BridgeSettings
) -> FilterDecision:
    """Evaluate an event against the trigger rules, in order.

    Rejects events from actors outside the flow patrol allow-list (when
    restricted), from other repositories, on PRs that are not open, and
    from forks. Of the remaining events, accepts a ``labeled`` action that
    added the trigger label, or a ``synchronize`` action on a PR that
    carries it.
    """
    if (
        settings.restrict_to_flow_patrol
        and event.actor_login not in settings.flow_patrol_allow_list
    ):
        return FilterDecision(False, FilterReason.ACTOR_NOT_ALLOWED)

    if event.repository_full_name != settings.source_project_id:
        return FilterDecision(False, FilterReason.FOREIGN_REPOSITORY)

    if event.state != "open":
        return FilterDecision(False, FilterReason.NOT_OPEN)

    if not event.head_label.startswith(settings.trusted_org_prefix):
        return FilterDecision(False, FilterReason.FORK)

    if event.action == PullRequestAction.LABELED:
        if event.label_name == settings.trigger_label:
            return FilterDecision(True, FilterReason.ACCEPTED)
        return FilterDecision(False, FilterReason.LABEL_NOT_ADDED)

    if event.action == PullRequestAction.SYNCHRONIZE:
        if settings.trigger_label in event.current_labels:
            return FilterDecision(True, FilterReason.ACCEPTED)
        return FilterDecision(False, FilterReason.LABEL_NOT_PRESENT)

    return FilterDecision(False, FilterReason.UNSUPPORTED_ACTION)


def should_trigger(event: PullRequestEvent, settings: BridgeSettings) -> bool:
    """Return True if the event should start a downstream test run."""
    return evaluate_event(event, settings).accepted
