"""
Exception hierarchy for distill_commit.

Every failure that can end a run derives from :class:`DistillError` so the
pipeline can turn it into a ``Failed`` outcome and the CLI can map it to a
distinct exit code.
"""

from __future__ import annotations

from typing import Optional


class DistillError(Exception):
    """Base class for all errors raised by distill_commit."""

    pass


class ConfigurationError(DistillError):
    """Raised when the configuration is invalid or the API key is missing."""

    pass


class RepositoryError(DistillError):
    """Raised when a Git command fails or the directory is not a repository."""

    pass


class NoStagedChangesError(RepositoryError):
    """Raised when there is nothing staged to describe."""

    pass


class GenerationServiceError(DistillError):
    """Raised when the generation service cannot be reached or refuses a request."""

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        self.detail = detail
        self.status_code = status_code
        if status_code is None:
            message = f"Generation service error: {detail}"
        else:
            message = f"Generation service returned status {status_code}: {detail}"
        super().__init__(message)


class EmptyResponseError(DistillError):
    """Raised when the generation service returns no usable text."""

    pass


class InvalidMessageError(DistillError):
    """Raised when generated text cannot be turned into a commit message."""

    pass


class MissingIdentityError(DistillError):
    """Raised when no author/committer identity is configured."""

    pass


class CommitError(DistillError):
    """Raised when Git fails to create the commit."""

    pass
