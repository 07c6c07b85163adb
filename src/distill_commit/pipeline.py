"""
Commit pipeline orchestration.

The :class:`Pipeline` runs one invocation of the tool as a small state
machine::

    START -> STAGED -> DIFFED -> GENERATED -> NORMALIZED
          -> COMMITTED | PREVIEWED | NO_CHANGES | FAILED

Each transition is one call into a collaborator (repository client, diff
assembler, message generator). Any :class:`DistillError` ends the run in
``FAILED`` with no further side effects: in particular a generation
failure never reaches the commit step. A run that ends without a commit
unstages whatever it staged itself. The result is a single immutable
:class:`RunOutcome`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Optional, Protocol

from distill_commit.diff.assembler import DiffPayload, assemble
from distill_commit.errors import DistillError, NoStagedChangesError
from distill_commit.llm.commit_message import CommitMessage
from distill_commit.vcs.git_client import ChangeSet


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class Stage(str, enum.Enum):
    START = "start"
    STAGED = "staged"
    DIFFED = "diffed"
    GENERATED = "generated"
    NORMALIZED = "normalized"
    COMMITTED = "committed"
    PREVIEWED = "previewed"
    NO_CHANGES = "no_changes"
    FAILED = "failed"


class ChangeRepository(Protocol):
    """Repository operations the pipeline relies on."""

    def has_staged_changes(self) -> bool: ...

    def stage_all_changes(self) -> None: ...

    def unstage_all_changes(self) -> None: ...

    def staged_diff(self) -> ChangeSet: ...

    def commit(self, message: CommitMessage) -> str: ...


class MessageGenerator(Protocol):
    """Generation operations the pipeline relies on."""

    def check_credentials(self) -> None: ...

    def generate(self, payload: DiffPayload) -> CommitMessage: ...


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunOutcome:
    """Base class of the terminal values returned by :meth:`Pipeline.run`."""

    stage: ClassVar[Stage]

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class Committed(RunOutcome):
    """A commit was created with ``message``."""

    stage: ClassVar[Stage] = Stage.COMMITTED

    commit_id: str
    message: CommitMessage
    payload: Optional[DiffPayload] = field(default=None, compare=False)


@dataclass(frozen=True)
class Previewed(RunOutcome):
    """A message was generated but, in preview mode, not committed."""

    stage: ClassVar[Stage] = Stage.PREVIEWED

    message: CommitMessage
    payload: Optional[DiffPayload] = field(default=None, compare=False)


@dataclass(frozen=True)
class NoChanges(RunOutcome):
    """Nothing was staged, so there was nothing to describe."""

    stage: ClassVar[Stage] = Stage.NO_CHANGES

    reason: str = "No changes to commit"


@dataclass(frozen=True)
class Failed(RunOutcome):
    """The run stopped on ``error`` after reaching ``failed_at``."""

    stage: ClassVar[Stage] = Stage.FAILED

    error: DistillError
    failed_at: Stage = Stage.START

    @property
    def succeeded(self) -> bool:
        return False


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunOptions:
    """Run mode for a single invocation.

    Attributes
    ----------
    auto_stage : bool
        Stage everything when nothing is staged yet.
    preview : bool
        Generate the message but do not commit.
    max_diff_bytes : int
        Size limit for the diff sent to the generation service.
    """

    auto_stage: bool = True
    preview: bool = False
    max_diff_bytes: int = 8000


class Pipeline:
    """Sequence staging, diffing, generation and committing for one run."""

    def __init__(
        self,
        repository: ChangeRepository,
        generator: MessageGenerator,
        options: Optional[RunOptions] = None,
        observer: Optional[Callable[[Stage], None]] = None,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.options = options or RunOptions()
        self._observer = observer
        self._stage = Stage.START
        self._auto_staged = False

    @property
    def stage(self) -> Stage:
        return self._stage

    def _enter(self, stage: Stage) -> None:
        logger.debug("Pipeline stage: %s -> %s", self._stage.value, stage.value)
        self._stage = stage
        if self._observer is not None:
            self._observer(stage)

    def _finish(self, outcome: RunOutcome) -> RunOutcome:
        self._enter(outcome.stage)
        return outcome

    def _ensure_staged(self) -> bool:
        """Return True once something is staged, auto-staging if allowed.

        A pre-existing staged set is never widened: partial staging done by
        the user wins over staging everything.
        """
        if self.repository.has_staged_changes():
            logger.info("Using the changes that are already staged")
            return True
        if not self.options.auto_stage:
            return False
        logger.info("No staged changes found, staging all changes...")
        self.repository.stage_all_changes()
        self._auto_staged = True
        return self.repository.has_staged_changes()

    def _restore_index(self) -> None:
        """Undo auto-staging for a run that ends without a commit.

        Nothing was staged before auto-staging, so the index goes back to
        HEAD. A failure here is logged and the original error is reported.
        """
        logger.info("Unstaging the changes staged by this run")
        try:
            self.repository.unstage_all_changes()
        except DistillError as exc:
            logger.error("Failed to restore the index: %s", exc)

    def run(self) -> RunOutcome:
        """Execute the pipeline and return its outcome. Never raises DistillError."""
        self._stage = Stage.START
        self._auto_staged = False
        if self._observer is not None:
            self._observer(Stage.START)
        try:
            # Credentials are checked before any repository or network access
            self.generator.check_credentials()

            if not self._ensure_staged():
                if self.options.auto_stage:
                    reason = "No changes to commit after staging all files."
                else:
                    reason = "No staged changes found and auto-staging is disabled."
                return self._finish(NoChanges(reason))
            self._enter(Stage.STAGED)

            try:
                changes = self.repository.staged_diff()
            except NoStagedChangesError as exc:
                return self._finish(NoChanges(str(exc)))
            payload = assemble(changes, self.options.max_diff_bytes)
            self._enter(Stage.DIFFED)

            message = self.generator.generate(payload)
            self._enter(Stage.GENERATED)
            if not message.conforming:
                logger.warning(
                    "Generated summary does not follow the Conventional Commits format: %s",
                    message.summary,
                )
            self._enter(Stage.NORMALIZED)

            if self.options.preview:
                if self._auto_staged:
                    self._restore_index()
                return self._finish(Previewed(message=message, payload=payload))

            commit_id = self.repository.commit(message)
            return self._finish(Committed(commit_id=commit_id, message=message, payload=payload))
        except DistillError as exc:
            logger.debug("Pipeline failed after stage %s: %s", self._stage.value, exc)
            failed_at = self._stage
            if self._auto_staged:
                self._restore_index()
            return self._finish(Failed(error=exc, failed_at=failed_at))
