"""Webhook handler for the bridge.

This module provides the WebhookHandler class for verifying and parsing
the two kinds of inbound deliveries:

- GitHub ``pull_request`` events, signed with the shared webhook secret
- CircleCI build completion callbacks

GitHub Webhook Payload Structure (pull_request event, trimmed):
{
  "action": "labeled",
  "label": {"name": "[Status] Needs Review"},
  "pull_request": {
    "number": 42,
    "state": "open",
    "head": {"label": "Automattic:feature-x", "ref": "feature-x", "sha": "abc"},
    "labels": [{"name": "[Status] Needs Review"}]
  },
  "repository": {"full_name": "Automattic/wp-calypso"},
  "sender": {"login": "octocat"}
}

CircleCI Callback Payload Structure (trimmed):
{
  "payload": {
    "outcome": "success",
    "status": "success",
    "build_url": "https://circleci.com/gh/Automattic/wp-desktop/123",
    "branch": "tests/feature-x",
    "build_parameters": {"sha": "abc", "calypsoProject": "Automattic/wp-calypso"}
  }
}
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from src.bridge.circleci.models import (
    SHA_PARAMETER,
    SOURCE_PROJECT_PARAMETER,
    BuildOutcome,
    CIBuildResult,
)

from .models import CallbackParseResult, PullRequestAction, PullRequestEvent

logger = logging.getLogger(__name__)


class WebhookHandler:
    """Verifies and parses inbound webhook deliveries.

    Attributes:
        secret: The GitHub webhook secret. When None, signature
                verification is disabled.
        source_project_id: Source repository; callbacks recording any other
                           project are not addressed to this bridge.
    """

    def __init__(self, secret: Optional[str], source_project_id: str) -> None:
        self.secret = secret
        self.source_project_id = source_project_id

    # ------------------------------------------------------------------
    # Signature verification
    # ------------------------------------------------------------------

    def verify_signature(
        self,
        body: bytes,
        signature_256: Optional[str] = None,
        signature_sha1: Optional[str] = None,
    ) -> bool:
        """Verify a GitHub webhook signature.

        Prefers the ``X-Hub-Signature-256`` header and falls back to the
        legacy sha1 ``X-Hub-Signature`` header.

        Args:
            body: Raw request body.
            signature_256: Value of X-Hub-Signature-256 ("sha256=<hex>").
            signature_sha1: Value of X-Hub-Signature ("sha1=<hex>").

        Returns:
            True if the secret is unset or the signature matches.
        """
        if not self.secret:
            return True

        if signature_256:
            return self._compare(body, signature_256, "sha256", hashlib.sha256)
        if signature_sha1:
            return self._compare(body, signature_sha1, "sha1", hashlib.sha1)

        logger.warning("Webhook delivery has no signature header")
        return False

    def _compare(self, body: bytes, header: str, prefix: str, digestmod) -> bool:
        scheme, _, received = header.partition("=")
        if scheme != prefix or not received:
            logger.warning("Malformed webhook signature header: %s", scheme)
            return False
        expected = hmac.new(self.secret.encode(), body, digestmod).hexdigest()
        return hmac.compare_digest(received, expected)

    # ------------------------------------------------------------------
    # GitHub pull_request events
    # ------------------------------------------------------------------

    def parse_pull_request_event(
        self, payload: Dict[str, Any]
    ) -> Optional[PullRequestEvent]:
        """Parse a GitHub pull_request event from a webhook payload.

        Args:
            payload: The raw webhook payload as a dictionary.

        Returns:
            PullRequestEvent if parsing succeeds, None for payloads missing
            required fields.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        pull_request = payload.get("pull_request")
        if not isinstance(pull_request, dict):
            logger.warning("Missing or invalid 'pull_request' field in payload")
            return None

        head = pull_request.get("head")
        if not isinstance(head, dict):
            logger.warning("Missing or invalid 'pull_request.head' field in payload")
            return None

        repository = payload.get("repository")
        if not isinstance(repository, dict):
            logger.warning("Missing or invalid 'repository' field in payload")
            return None

        action = PullRequestAction.from_raw(payload.get("action"))

        label_name = None
        if action == PullRequestAction.LABELED:
            label = payload.get("label")
            if isinstance(label, dict) and isinstance(label.get("name"), str):
                label_name = label["name"]

        sender = payload.get("sender")
        actor_login = sender.get("login") if isinstance(sender, dict) else None

        try:
            event = PullRequestEvent(
                number=pull_request.get("number"),
                state=pull_request.get("state"),
                actor_login=actor_login or "",
                head_label=head.get("label") or "",
                head_ref=head.get("ref"),
                head_sha=head.get("sha"),
                repository_full_name=repository.get("full_name") or "",
                action=action,
                label_name=label_name,
                current_labels=frozenset(
                    self._extract_labels(pull_request.get("labels", []))
                ),
            )
        except ValidationError as e:
            logger.warning(
                "Invalid pull_request payload: %s",
                e.errors(include_url=False),
            )
            return None

        logger.debug(
            "Parsed pull request event: action=%s, pull_request=%s",
            payload.get("action"),
            event.pull_request_id,
        )
        return event

    def _extract_labels(self, labels_data: Any) -> List[str]:
        """Extract label names from the labels array.

        GitHub sends labels as an array of objects with a 'name' field.
        Invalid entries are skipped.
        """
        if not isinstance(labels_data, list):
            return []

        labels = []
        for label in labels_data:
            if isinstance(label, dict):
                name = label.get("name")
                if isinstance(name, str) and name:
                    labels.append(name)
        return labels

    # ------------------------------------------------------------------
    # CircleCI callbacks
    # ------------------------------------------------------------------

    def parse_build_callback(
        self, body: Union[bytes, str, Dict[str, Any]]
    ) -> CallbackParseResult:
        """Validate a CircleCI callback and extract the build result.

        Deliveries that are malformed or belong to another project are
        reported as not applicable; this method never raises.

        Args:
            body: Raw request body, or an already decoded JSON object.

        Returns:
            CallbackParseResult tagged applicable or not applicable.
        """
        if isinstance(body, (bytes, str)):
            try:
                body = json.loads(body)
            except (UnicodeDecodeError, ValueError):
                return CallbackParseResult.ignore("body is not JSON")

        if not isinstance(body, dict):
            return CallbackParseResult.ignore("body is not a JSON object")

        payload = body.get("payload")
        if not isinstance(payload, dict):
            return CallbackParseResult.ignore("missing payload")

        parameters = payload.get("build_parameters")
        if not isinstance(parameters, dict):
            return CallbackParseResult.ignore("missing build_parameters")

        sha = parameters.get(SHA_PARAMETER)
        if not isinstance(sha, str) or not sha:
            return CallbackParseResult.ignore("missing sha build parameter")

        project = parameters.get(SOURCE_PROJECT_PARAMETER)
        if project != self.source_project_id:
            return CallbackParseResult.ignore(
                f"build belongs to project {project!r}"
            )

        return CallbackParseResult.accept(
            CIBuildResult(
                outcome=BuildOutcome.from_raw(payload.get("outcome")),
                sha=sha,
                build_url=self._as_text(payload.get("build_url")),
                source_branch=self._as_text(payload.get("branch")),
                status_text=self._as_text(payload.get("status")),
                source_project_id=project,
            )
        )

    @staticmethod
    def _as_text(value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


def create_webhook_handler(
    secret: Optional[str], source_project_id: str
) -> WebhookHandler:
    """Factory function to create a WebhookHandler instance."""
    return WebhookHandler(secret=secret, source_project_id=source_project_id)
