"""GitHub API client for refs and commit statuses.

This module provides an async wrapper around the GitHub API for the
operations the bridge needs against the downstream and source
repositories:

- Checking whether a branch exists
- Reading, creating, updating and deleting branch refs
- Posting commit statuses

Every operation expects one exact status code. Anything else is raised as
a GitHubAPIError carrying the response body; callers decide whether the
failure is fatal for their step. Requests are never retried.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from src.bridge.github.models import BranchRef, CommitStatus


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class ReferenceExistsError(GitHubAPIError):
    """Raised when creating a ref that already exists (422)."""


class GitHubClient:
    """Async GitHub API client.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.

    Example:
        >>> client = GitHubClient(token="ghp_xxx")
        >>> async with client:
        ...     exists = await client.branch_exists("org/repo", "tests/foo")
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "pr-ci-bridge",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send a single request; network failures become GitHubAPIError."""
        try:
            return await self.client.request(method=method, url=path, json=json_data)
        except httpx.RequestError as e:
            logger.error(
                "GitHub API request failed",
                extra={"path": path, "method": method, "error": str(e)},
            )
            raise GitHubAPIError(
                message=f"GitHub API request failed: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

    def _expect(
        self,
        response: httpx.Response,
        expected_status: int,
        action: str,
    ) -> httpx.Response:
        """Raise GitHubAPIError unless the response has the expected status."""
        if response.status_code == expected_status:
            return response

        error_body = response.text
        logger.error(
            "GitHub API error",
            extra={
                "action": action,
                "status_code": response.status_code,
                "expected_status": expected_status,
                "response_body": error_body[:500],
            },
        )
        error_class = GitHubAPIError
        if response.status_code == 422 and "already exists" in error_body.lower():
            error_class = ReferenceExistsError
        raise error_class(
            message=f"Unable to {action}: GitHub API returned {response.status_code}",
            status_code=response.status_code,
            response_body=error_body,
            request_url=str(response.request.url),
        )

    @staticmethod
    def _heads_path(project: str, branch: str) -> str:
        return f"/repos/{project}/git/refs/heads/{quote(branch, safe='/')}"

    async def branch_exists(self, project: str, branch: str) -> bool:
        """Check whether a branch exists.

        GitHub answers 200 for an existing branch; any other status is
        treated as absent.

        Args:
            project: Repository in "owner/name" form.
            branch: Branch name to look up.

        Raises:
            GitHubAPIError: Only on network failure.
        """
        path = f"/repos/{project}/branches/{quote(branch, safe='/')}"
        response = await self._request("GET", path)

        exists = response.status_code == 200
        logger.debug(
            "Checked branch existence",
            extra={
                "project": project,
                "branch": branch,
                "exists": exists,
                "status_code": response.status_code,
            },
        )
        return exists

    async def get_ref(self, project: str, branch: str) -> BranchRef:
        """Fetch the head sha of a branch.

        Args:
            project: Repository in "owner/name" form.
            branch: Branch name.

        Returns:
            BranchRef with the current head sha.

        Raises:
            GitHubAPIError: If the ref cannot be read.
        """
        response = self._expect(
            await self._request("GET", self._heads_path(project, branch)),
            200,
            f"get details for '{branch}' branch",
        )
        try:
            return BranchRef.from_ref_response(branch, response.json())
        except (KeyError, TypeError, ValueError) as e:
            raise GitHubAPIError(
                message=f"Malformed ref response for '{branch}': {e}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.request.url),
            ) from e

    async def create_ref(self, project: str, branch: str, sha: str) -> BranchRef:
        """Create ``refs/heads/{branch}`` pointing at ``sha``.

        Raises:
            ReferenceExistsError: If GitHub reports the ref already exists.
            GitHubAPIError: For any other non-201 response.
        """
        logger.info(
            "Creating branch",
            extra={"project": project, "branch": branch, "sha": sha},
        )
        self._expect(
            await self._request(
                "POST",
                f"/repos/{project}/git/refs",
                json_data={"ref": f"refs/heads/{branch}", "sha": sha},
            ),
            201,
            "create new branch",
        )
        return BranchRef(name=branch, sha=sha)

    async def update_ref(
        self,
        project: str,
        branch: str,
        sha: str,
        force: bool = True,
    ) -> BranchRef:
        """Move an existing branch to ``sha``.

        Raises:
            GitHubAPIError: For any non-200 response.
        """
        logger.info(
            "Updating branch",
            extra={"project": project, "branch": branch, "sha": sha},
        )
        self._expect(
            await self._request(
                "PATCH",
                self._heads_path(project, branch),
                json_data={"sha": sha, "force": force},
            ),
            200,
            "update existing branch",
        )
        return BranchRef(name=branch, sha=sha)

    async def delete_ref(self, project: str, branch: str) -> None:
        """Delete a branch.

        Raises:
            GitHubAPIError: For any non-204 response.
        """
        self._expect(
            await self._request("DELETE", self._heads_path(project, branch)),
            204,
            f"delete branch '{branch}'",
        )
        logger.info(
            "Branch deleted",
            extra={"project": project, "branch": branch},
        )

    async def create_commit_status(
        self,
        project: str,
        sha: str,
        status: CommitStatus,
    ) -> None:
        """Post a commit status on ``sha``.

        Raises:
            GitHubAPIError: For any non-201 response.
        """
        self._expect(
            await self._request(
                "POST",
                f"/repos/{project}/statuses/{sha}",
                json_data=status.to_payload(),
            ),
            201,
            "post commit status",
        )
        logger.debug(
            "GitHub status updated",
            extra={
                "project": project,
                "sha": sha,
                "state": status.state.value,
                "context": status.context,
            },
        )
