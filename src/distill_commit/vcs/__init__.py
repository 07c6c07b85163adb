"""
Version control integration.

This package contains the Git client used by the commit pipeline. The
client exposes methods for detecting the repository root, querying and
staging changes, rendering the staged diff as structured records, and
committing.
"""

from .git_client import ChangeKind, ChangeSet, FileChange, GitClient  # noqa: F401
