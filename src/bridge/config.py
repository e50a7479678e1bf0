"""Bridge configuration using pydantic-settings.

This module defines the BridgeSettings class that reads configuration
from environment variables with the BRIDGE_ prefix. The settings object is
built once at startup and passed explicitly to every component; nothing
else in the package reads process environment.

Defaults reproduce the wp-calypso → wp-desktop deployment the bridge was
written for.
"""

import json
from typing import Annotated, Any, FrozenSet, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_FLOW_PATROL_USERS = frozenset(
    {
        "alisterscott",
        "brbrr",
        "bsessions85",
        "hoverduck",
        "rachelmcr",
        "designsimply",
        "astralbodies",
    }
)


class BridgeSettings(BaseSettings):
    """Bridge configuration from environment variables.

    All environment variables are prefixed with BRIDGE_ (e.g., BRIDGE_GITHUB_TOKEN).

    Required fields (must be set via environment variables):
    - github_token: GitHub API token used for refs and commit statuses
    - circleci_token: CircleCI API token used to trigger builds
    """

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Event filtering
    # -------------------------------------------------------------------------
    # Only process events sent by members of the flow patrol allow-list
    restrict_to_flow_patrol: bool = False

    flow_patrol_allow_list: Annotated[FrozenSet[str], NoDecode] = (
        DEFAULT_FLOW_PATROL_USERS
    )

    # Label whose presence on a PR triggers the downstream tests
    trigger_label: str = "[Status] Needs Review"

    # Repository whose pull requests are watched ("owner/name")
    source_project_id: str = "Automattic/wp-calypso"

    # Head labels must start with this prefix; anything else is a fork
    trusted_org_prefix: str = "Automattic:"

    # -------------------------------------------------------------------------
    # Downstream project
    # -------------------------------------------------------------------------
    # Repository whose CircleCI build runs the tests ("owner/name")
    downstream_project_id: str = "Automattic/wp-desktop"

    # Long-lived branch that test branches are synchronized from
    integration_branch: str = "develop"

    # Prefix of the ephemeral per-PR test branches
    test_branch_prefix: str = "tests/"

    # Build parameter that carries the source head sha for the downstream job
    content_hash_parameter: str = "CALYPSO_HASH"

    # Context of every commit status written by the bridge
    commit_status_context: str = "ci/wp-desktop"

    # -------------------------------------------------------------------------
    # GitHub
    # -------------------------------------------------------------------------
    github_token: str

    github_base_url: str = "https://api.github.com"

    # Secret for validating GitHub webhook signatures; unset disables checks
    webhook_secret: Optional[str] = None

    # -------------------------------------------------------------------------
    # CircleCI
    # -------------------------------------------------------------------------
    circleci_token: str

    circleci_base_url: str = "https://circleci.com/api/v1.1"

    # -------------------------------------------------------------------------
    # Server
    # -------------------------------------------------------------------------
    http_timeout_seconds: float = 30.0

    host: str = "0.0.0.0"

    port: int = 7777

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("flow_patrol_allow_list", mode="before")
    @classmethod
    def parse_allow_list(cls, v: Any) -> Any:
        """Accept a JSON array or a comma-separated string of logins."""
        if isinstance(v, str):
            text = v.strip()
            if text.startswith("["):
                v = json.loads(text)
            else:
                v = text.split(",")
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(item.strip() for item in v if item and item.strip())
        return v

    @field_validator("github_token", "circleci_token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate that API tokens are not empty."""
        if not v or not v.strip():
            raise ValueError("API token cannot be empty")
        return v

    @field_validator("github_base_url", "circleci_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that API base URLs are http(s) URLs."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("source_project_id", "downstream_project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Validate that project ids look like "owner/name"."""
        owner, _, name = v.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError("project id must be in the form 'owner/name'")
        return v

    @field_validator(
        "trigger_label",
        "trusted_org_prefix",
        "integration_branch",
        "test_branch_prefix",
        "content_hash_parameter",
        "commit_status_context",
    )
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @field_validator("http_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def downstream_name(self) -> str:
        """Repository name of the downstream project (e.g. "wp-desktop")."""
        return self.downstream_project_id.split("/", 1)[1]

    def test_branch_name(self, head_ref: str) -> str:
        """Derive the test branch name for a source head ref."""
        return f"{self.test_branch_prefix}{head_ref}"

    def is_test_branch(self, branch: str) -> bool:
        return branch.startswith(self.test_branch_prefix)


def get_settings() -> BridgeSettings:
    """Create and return a BridgeSettings instance.

    Returns:
        BridgeSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return BridgeSettings()
