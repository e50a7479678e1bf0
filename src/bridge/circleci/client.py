"""CircleCI API client for triggering downstream builds.

Uses the CircleCI v1.1 "trigger a new build with a branch" endpoint:

    POST {base_url}/project/github/{project}/tree/{branch}

with a ``build_parameters`` body. CircleCI answers 201 with the new build,
whose ``build_url`` is returned to the caller.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from src.bridge.circleci.models import CIBuildRequest


logger = logging.getLogger(__name__)


class CircleCIAPIError(Exception):
    """Raised when a CircleCI API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        response_body: Response body from CircleCI.
        request_url: The URL that was requested (token stripped).
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


class CircleCIClient:
    """Async CircleCI API client.

    Attributes:
        token: CircleCI API token, sent as the ``circle-token`` parameter.
        base_url: Base URL of the v1.1 API.
        content_hash_parameter: Build parameter carrying the source sha.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://circleci.com/api/v1.1",
        content_hash_parameter: str = "CALYPSO_HASH",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.content_hash_parameter = content_hash_parameter
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CircleCIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def trigger_build(self, project: str, request: CIBuildRequest) -> str:
        """Trigger a build of ``request.target_branch`` in ``project``.

        Args:
            project: Downstream repository in "owner/name" form.
            request: Branch and parameters of the build.

        Returns:
            The ``build_url`` of the created build.

        Raises:
            CircleCIAPIError: If CircleCI does not answer 201, or the request
                fails on the network.
        """
        path = (
            f"/project/github/{project}/tree/"
            f"{quote(request.target_branch, safe='')}"
        )
        body: Dict[str, Any] = {
            "build_parameters": request.to_build_parameters(
                self.content_hash_parameter
            )
        }

        logger.info(
            "Triggering CircleCI build",
            extra={
                "project": project,
                "branch": request.target_branch,
                "sha": request.sha,
                "pull_request": request.pull_request_number,
            },
        )

        try:
            response = await self.client.post(
                path,
                params={"circle-token": self.token},
                json=body,
            )
        except httpx.RequestError as e:
            raise CircleCIAPIError(
                message=f"CircleCI request failed: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if response.status_code != 201:
            logger.error(
                "CircleCI API error",
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "response_body": response.text[:500],
                },
            )
            raise CircleCIAPIError(
                message=f"CircleCI API returned {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=f"{self.base_url}{path}",
            )

        try:
            build_url = response.json()["build_url"]
        except (KeyError, TypeError, ValueError) as e:
            raise CircleCIAPIError(
                message=f"CircleCI response has no build_url: {e}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=f"{self.base_url}{path}",
            ) from e

        logger.debug(
            "Tests have been kicked off",
            extra={"project": project, "build_url": build_url},
        )
        return build_url
