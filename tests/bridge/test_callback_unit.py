"""Unit tests for the BuildCallbackProcessor.

Covers the outcome → commit state mapping, test branch cleanup after
passing builds, and silently ignored foreign or malformed callbacks.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.bridge.callback import BuildCallbackProcessor, map_outcome
from src.bridge.circleci.models import BuildOutcome, CIBuildResult
from src.bridge.events.models import EventType
from src.bridge.github.client import GitHubAPIError
from src.bridge.github.models import CommitState
from src.bridge.webhook.handler import WebhookHandler

BUILD_URL = "https://circleci.com/gh/Automattic/wp-desktop/99"


def run_async(coro):
    return asyncio.run(coro)


def _callback(
    outcome: str = "success",
    status: str = "success",
    branch: str = "tests/x",
    project: str = "Automattic/wp-calypso",
    sha: str = "c0ffee42",
) -> dict:
    return {
        "payload": {
            "outcome": outcome,
            "status": status,
            "build_url": BUILD_URL,
            "branch": branch,
            "build_parameters": {
                "BRANCHNAME": branch,
                "sha": sha,
                "CALYPSO_HASH": sha,
                "pullRequestNum": 42,
                "calypsoProject": project,
            },
        }
    }


@pytest.fixture
def github_client():
    return AsyncMock()


@pytest.fixture
def event_emitter():
    return AsyncMock()


@pytest.fixture
def processor(settings, github_client, event_emitter):
    return BuildCallbackProcessor(
        settings=settings,
        github_client=github_client,
        webhook_handler=WebhookHandler(
            secret=None, source_project_id=settings.source_project_id
        ),
        event_emitter=event_emitter,
    )


class TestMapOutcome:

    def _result(self, outcome: BuildOutcome, status_text: str) -> CIBuildResult:
        return CIBuildResult(
            outcome=outcome,
            sha="abc",
            status_text=status_text,
            source_project_id="Automattic/wp-calypso",
        )

    def test_success(self):
        state, description = map_outcome(self._result(BuildOutcome.SUCCESS, "success"), "wp-desktop")

        assert state == CommitState.SUCCESS
        assert description == "Your PR passed the wp-desktop tests on CircleCI!"

    def test_failed_includes_status_text(self):
        state, description = map_outcome(self._result(BuildOutcome.FAILED, "failed"), "wp-desktop")

        assert state == CommitState.FAILURE
        assert description == "wp-desktop test status: failed"

    def test_other_outcome_is_error(self):
        state, description = map_outcome(self._result(BuildOutcome.OTHER, "timedout"), "wp-desktop")

        assert state == CommitState.ERROR
        assert "timedout" in description


class TestSuccessfulBuilds:

    def test_success_on_test_branch_posts_status_and_deletes_branch(
        self, processor, github_client
    ):
        outcome = run_async(processor.on_build_callback(_callback(branch="tests/x")))

        assert outcome.applicable
        assert outcome.state == CommitState.SUCCESS
        assert outcome.status_posted and outcome.branch_deleted

        source, sha, status = github_client.create_commit_status.call_args.args
        assert source == "Automattic/wp-calypso"
        assert sha == "c0ffee42"
        assert status.state == CommitState.SUCCESS
        assert status.target_url == BUILD_URL
        assert status.context == "ci/wp-desktop"
        github_client.delete_ref.assert_awaited_once_with(
            "Automattic/wp-desktop", "tests/x"
        )

    def test_status_is_posted_before_branch_delete(self, processor, github_client):
        calls = []
        github_client.create_commit_status.side_effect = lambda *a: calls.append("status")
        github_client.delete_ref.side_effect = lambda *a: calls.append("delete")

        run_async(processor.on_build_callback(_callback()))

        assert calls == ["status", "delete"]

    def test_success_on_integration_branch_keeps_branch(self, processor, github_client):
        outcome = run_async(processor.on_build_callback(_callback(branch="develop")))

        assert outcome.state == CommitState.SUCCESS
        github_client.create_commit_status.assert_awaited_once()
        github_client.delete_ref.assert_not_called()

    def test_duplicate_callbacks_post_twice(self, processor, github_client):
        payload = _callback(branch="develop")

        run_async(processor.on_build_callback(payload))
        run_async(processor.on_build_callback(payload))

        assert github_client.create_commit_status.await_count == 2

    def test_delete_failure_is_not_fatal(self, processor, github_client, event_emitter):
        github_client.delete_ref.side_effect = GitHubAPIError(
            "Unable to delete branch", status_code=422, response_body="protected"
        )

        outcome = run_async(processor.on_build_callback(_callback()))

        assert outcome.status_posted is True
        assert outcome.branch_deleted is False
        assert github_client.delete_ref.await_count == 1
        last = event_emitter.emit.call_args_list[-1].args[0]
        assert last.event_type == EventType.ERROR
        assert last.details["operation"] == "delete_branch"


class TestFailedBuilds:

    def test_failed_outcome_posts_failure_with_status_text(self, processor, github_client):
        outcome = run_async(
            processor.on_build_callback(_callback(outcome="failed", status="failed"))
        )

        assert outcome.state == CommitState.FAILURE
        status = github_client.create_commit_status.call_args.args[2]
        assert status.state == CommitState.FAILURE
        assert "failed" in status.description
        github_client.delete_ref.assert_not_called()

    def test_canceled_outcome_posts_error(self, processor, github_client):
        run_async(
            processor.on_build_callback(_callback(outcome="canceled", status="canceled"))
        )

        status = github_client.create_commit_status.call_args.args[2]
        assert status.state == CommitState.ERROR
        assert status.description == "wp-desktop test status: canceled"
        github_client.delete_ref.assert_not_called()

    def test_status_failure_does_not_block_branch_delete(self, processor, github_client):
        github_client.create_commit_status.side_effect = GitHubAPIError(
            "Unable to post commit status", status_code=404
        )

        outcome = run_async(processor.on_build_callback(_callback()))

        assert outcome.status_posted is False
        github_client.delete_ref.assert_awaited_once()


class TestIgnoredCallbacks:

    @pytest.mark.parametrize(
        "payload",
        [
            _callback(project="someone/else"),
            {"payload": {"outcome": "success"}},
            {"payload": {"build_parameters": {"calypsoProject": "Automattic/wp-calypso"}}},
            {"something": "else"},
            b"not json at all",
            json.dumps(["a", "list"]),
        ],
    )
    def test_foreign_or_malformed_payload_is_ignored(
        self, processor, github_client, event_emitter, payload
    ):
        outcome = run_async(processor.on_build_callback(payload))

        assert outcome.applicable is False
        assert outcome.reason
        github_client.create_commit_status.assert_not_called()
        github_client.delete_ref.assert_not_called()
        emitted = event_emitter.emit.call_args_list
        assert [c.args[0].event_type for c in emitted] == [EventType.IGNORED_CALLBACK]

    def test_raw_bytes_callback_is_parsed(self, processor, github_client):
        body = json.dumps(_callback(branch="develop")).encode()

        outcome = run_async(processor.on_build_callback(body))

        assert outcome.applicable
        github_client.create_commit_status.assert_awaited_once()
