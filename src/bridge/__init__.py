"""Bridge between GitHub pull requests and downstream CircleCI builds.

This package provides:
- GitHub webhook handling for pull request events
- Event filtering (repository, PR state, forks, trigger label)
- Per-PR test branch reconciliation in the downstream repository
- CircleCI build triggering with pending commit statuses
- CircleCI callback processing into final commit statuses
"""
