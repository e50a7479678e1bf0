"""CircleCI build triggering and build result models."""

from src.bridge.circleci.client import CircleCIAPIError, CircleCIClient
from src.bridge.circleci.models import (
    BuildOutcome,
    CIBuildRequest,
    CIBuildResult,
)

__all__ = [
    "BuildOutcome",
    "CIBuildRequest",
    "CIBuildResult",
    "CircleCIAPIError",
    "CircleCIClient",
]
