"""
Git client implementation for distill_commit.

This module wraps the Git operations required by the commit pipeline:
querying the staged set, staging everything, rendering the staged diff as
structured per-file records, and creating the commit. All subprocess calls
go through :meth:`GitClient._run` so that unit tests can mock them easily.
"""

from __future__ import annotations

import enum
import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Mapping, Optional, Tuple, Type

from distill_commit.errors import (
    CommitError,
    MissingIdentityError,
    NoStagedChangesError,
    RepositoryError,
)

if TYPE_CHECKING:
    from distill_commit.llm.commit_message import CommitMessage


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs will propagate to the root when configured by the CLI.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


_BINARY_PATCH_RE = re.compile(r"^Binary files .* differ$", re.MULTILINE)

# Messages Git prints when it cannot work out who is committing.
_IDENTITY_FAILURES = (
    "please tell me who you are",
    "empty ident name",
    "unable to auto-detect email address",
)


class ChangeKind(str, enum.Enum):
    """Kind of change recorded for a single staged file."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"

    @classmethod
    def from_status(cls, status: str) -> "ChangeKind":
        """Map a ``git diff --name-status`` letter to a change kind."""
        letter = status[:1]
        if letter == "A":
            return cls.ADDED
        if letter == "D":
            return cls.DELETED
        if letter == "R":
            return cls.RENAMED
        # M, T (type change) and U (unmerged) are all content changes
        return cls.MODIFIED


@dataclass(frozen=True)
class FileChange:
    """Representation of a single staged file change."""

    path: str
    kind: ChangeKind
    patch: str
    old_path: Optional[str] = None
    binary: bool = False


@dataclass(frozen=True)
class ChangeSet:
    """Ordered, read-only collection of staged file changes.

    A change set describes the index at the moment it was captured. Any
    staging performed afterwards invalidates it; callers must query the
    repository again.
    """

    changes: Tuple[FileChange, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[FileChange]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    def __bool__(self) -> bool:
        return bool(self.changes)

    @property
    def paths(self) -> List[str]:
        return [change.path for change in self.changes]


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path, environ: Optional[Mapping[str, str]] = None) -> None:
        self.repo_root = repo_root
        self._environ = os.environ if environ is None else environ

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` entry is found or the filesystem
        root is reached. ``.git`` may be a file for worktrees and submodules.
        """
        current = start.resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Basic Git commands
    # ------------------------------------------------------------------
    def _run(
        self,
        args: List[str],
        check: bool = True,
        error_cls: Type[Exception] = RepositoryError,
    ) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        RepositoryError
            If Git cannot be executed, or (by default) if the command exits
            with a non-zero status when ``check`` is True. ``error_cls``
            selects a different exception for the non-zero exit case.
        """
        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd))
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",  # Replace invalid characters instead of failing
            )
        except OSError as exc:
            logger.error("Failed to execute Git: %s", exc)
            raise RepositoryError(f"Failed to execute git: {exc}") from exc

        if check and result.returncode != 0:
            logger.error(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd),
                result.stdout,
                result.stderr,
            )
            raise error_cls(result.stderr.strip() or result.stdout.strip())
        return result

    def get_current_branch(self) -> str:
        """Return the name of the current branch (``HEAD`` when detached)."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"], check=False)
        if result.returncode != 0:
            # Unborn branch: HEAD does not resolve yet
            result = self._run(["symbolic-ref", "--short", "HEAD"])
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Staged state
    # ------------------------------------------------------------------
    def has_staged_changes(self) -> bool:
        """Return True if the index differs from HEAD.

        Raises
        ------
        RepositoryError
            If the repository cannot be queried.
        """
        result = self._run(["diff", "--cached", "--quiet", "--no-ext-diff"], check=False)
        if result.returncode == 0:
            return False
        if result.returncode == 1:
            return True
        message = result.stderr.strip() or f"git diff exited with status {result.returncode}"
        logger.error("Failed to query staged changes: %s", message)
        raise RepositoryError(message)

    def stage_all_changes(self) -> None:
        """Stage every modification, addition and deletion in the working tree.

        Ignored files stay untouched. Running this on a clean tree is a no-op.
        """
        self._run(["add", "--all"])
        logger.debug("Successfully staged all changes")

    def unstage_all_changes(self) -> None:
        """Reset the index to HEAD, keeping the working tree as it is.

        On an unborn branch there is no HEAD to reset to, so every path is
        removed from the index instead.
        """
        head = self._run(["rev-parse", "--verify", "-q", "HEAD"], check=False)
        if head.returncode == 0:
            self._run(["reset", "-q"])
        else:
            self._run(["rm", "-r", "--cached", "-q", "--ignore-unmatch", "--", "."])
        logger.debug("Successfully unstaged all changes")

    def _staged_entries(self) -> List[Tuple[ChangeKind, str, Optional[str]]]:
        result = self._run(["diff", "--cached", "--name-status", "-M", "-z", "--no-color"])
        tokens = result.stdout.split("\0")
        entries: List[Tuple[ChangeKind, str, Optional[str]]] = []
        index = 0
        while index < len(tokens):
            status = tokens[index]
            index += 1
            if not status:
                continue
            kind = ChangeKind.from_status(status)
            if status[0] in "RC":
                old_path, path = tokens[index], tokens[index + 1]
                index += 2
                if status[0] == "C":
                    # Copies are not detected without -C; treat as an addition
                    entries.append((ChangeKind.ADDED, path, None))
                else:
                    entries.append((kind, path, old_path))
            else:
                entries.append((kind, tokens[index], None))
                index += 1
        return entries

    def _patch_for(self, path: str, old_path: Optional[str]) -> str:
        pathspec = [old_path, path] if old_path else [path]
        result = self._run(
            # Paths are literal: "[id].tsx" must not match "i.tsx"
            ["--literal-pathspecs", "diff", "--cached", "--no-color", "--no-ext-diff", "-M", "--"]
            + pathspec
        )
        patch = result.stdout
        if patch and not patch.endswith("\n"):
            patch += "\n"
        return patch

    def staged_diff(self) -> ChangeSet:
        """Return the staged changes as structured per-file records.

        Records are sorted by path so that the order is stable across runs.

        Raises
        ------
        NoStagedChangesError
            If nothing is staged.
        RepositoryError
            If Git fails.
        """
        entries = self._staged_entries()
        if not entries:
            raise NoStagedChangesError(
                "No staged changes found. Stage your changes first with: git add <files>"
            )
        changes: List[FileChange] = []
        for kind, path, old_path in sorted(entries, key=lambda entry: entry[1]):
            patch = self._patch_for(path, old_path)
            changes.append(
                FileChange(
                    path=path,
                    kind=kind,
                    patch=patch,
                    old_path=old_path,
                    binary=bool(_BINARY_PATCH_RE.search(patch)),
                )
            )
        logger.debug(
            "Captured %d staged change(s), %d patch characters",
            len(changes),
            sum(len(change.patch) for change in changes),
        )
        return ChangeSet(tuple(changes))

    # ------------------------------------------------------------------
    # Committing
    # ------------------------------------------------------------------
    def _config_value(self, key: str) -> Optional[str]:
        result = self._run(["config", "--get", key], check=False)
        value = result.stdout.strip()
        return value or None

    def _has_identity(self) -> bool:
        """Return True if a name or an email is configured for commits."""
        env_keys = (
            "GIT_AUTHOR_NAME",
            "GIT_AUTHOR_EMAIL",
            "GIT_COMMITTER_NAME",
            "GIT_COMMITTER_EMAIL",
        )
        if any(self._environ.get(key, "").strip() for key in env_keys):
            return True
        return bool(self._config_value("user.name") or self._config_value("user.email"))

    def commit(self, message: "CommitMessage") -> str:
        """Create a commit from the index and return its id.

        Raises
        ------
        MissingIdentityError
            If no author/committer identity is configured.
        CommitError
            If Git fails to create the commit.
        """
        if not self._has_identity():
            raise MissingIdentityError(
                "Git user.name and user.email are not configured. "
                "Set them with: git config user.name '<name>' && git config user.email '<email>'"
            )
        try:
            self._run(
                ["commit", "--quiet", "--cleanup=whitespace", "-m", message.render()],
                error_cls=CommitError,
            )
        except CommitError as exc:
            if any(marker in str(exc).lower() for marker in _IDENTITY_FAILURES):
                raise MissingIdentityError(str(exc)) from exc
            raise
        commit_id = self._run(["rev-parse", "HEAD"], error_cls=CommitError).stdout.strip()
        logger.debug("Successfully created commit %s", commit_id)
        return commit_id
