from __future__ import annotations

from typing import Optional


class OctotokenError(Exception):
    """Base class for errors raised while issuing installation tokens."""


class InstallationNotFound(OctotokenError, LookupError):
    """No installation (or repository within an installation) matched.

    ``resource`` is the queried key: ``owner`` for a missing installation or
    ``owner/repo`` for a missing repository.
    """

    def __init__(self, resource: str):
        super().__init__(resource)
        self.resource = resource

    def __str__(self) -> str:
        return f"installation not found: '{self.resource}'"


class RemoteFailure(OctotokenError, RuntimeError):
    """A call to the GitHub API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubAPIError(RemoteFailure):
    pass


class TokenCreationError(RemoteFailure):
    pass
