import unittest

from distill_commit.diff.assembler import DiffPayload
from distill_commit.errors import (
    CommitError,
    ConfigurationError,
    GenerationServiceError,
    InvalidMessageError,
    MissingIdentityError,
    NoStagedChangesError,
    RepositoryError,
)
from distill_commit.llm.commit_message import CommitMessage
from distill_commit.pipeline import (
    Committed,
    Failed,
    NoChanges,
    Pipeline,
    Previewed,
    RunOptions,
    Stage,
)
from distill_commit.vcs.git_client import ChangeKind, ChangeSet, FileChange


HELLO = FileChange(
    path="hello.txt",
    kind=ChangeKind.ADDED,
    patch="diff --git a/hello.txt b/hello.txt\nnew file mode 100644\n--- /dev/null\n+++ b/hello.txt\n@@ -0,0 +1 @@\n+hi\n",
)
MESSAGE = CommitMessage("feat: add hello.txt with greeting", "", True)


class FakeRepository:
    """In-memory stand-in recording every call made by the pipeline."""

    def __init__(self, staged=(), unstaged=(), commit_error=None, diff_error=None, unstage_error=None):
        self.staged = list(staged)
        self.unstaged = list(unstaged)
        self.commit_error = commit_error
        self.diff_error = diff_error
        self.unstage_error = unstage_error
        self.calls = []
        self.commits = []

    def has_staged_changes(self):
        self.calls.append("has_staged_changes")
        return bool(self.staged)

    def stage_all_changes(self):
        self.calls.append("stage_all_changes")
        self.staged.extend(self.unstaged)
        self.unstaged = []

    def unstage_all_changes(self):
        self.calls.append("unstage_all_changes")
        if self.unstage_error is not None:
            raise self.unstage_error
        self.unstaged = self.staged + self.unstaged
        self.staged = []

    def staged_diff(self):
        self.calls.append("staged_diff")
        if self.diff_error is not None:
            raise self.diff_error
        return ChangeSet(tuple(self.staged))

    def commit(self, message):
        self.calls.append("commit")
        if self.commit_error is not None:
            raise self.commit_error
        self.commits.append(message)
        return "a" * 40


class FakeGenerator:
    def __init__(self, message=MESSAGE, error=None, credential_error=None):
        self.message = message
        self.error = error
        self.credential_error = credential_error
        self.payloads = []

    def check_credentials(self):
        if self.credential_error is not None:
            raise self.credential_error

    def generate(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.message


class TestPipeline(unittest.TestCase):
    def run_pipeline(self, repository, generator, **options):
        stages = []
        pipeline = Pipeline(repository, generator, RunOptions(**options), observer=stages.append)
        outcome = pipeline.run()
        self.assertEqual(pipeline.stage, outcome.stage)
        return outcome, stages

    def test_commit_with_staged_changes(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        generator = FakeGenerator()
        outcome, stages = self.run_pipeline(repo, generator)

        self.assertEqual(outcome, Committed(commit_id="a" * 40, message=MESSAGE))
        self.assertTrue(outcome.succeeded)
        self.assertEqual(repo.commits, [MESSAGE])
        self.assertNotIn("stage_all_changes", repo.calls)
        self.assertEqual(
            stages,
            [
                Stage.START,
                Stage.STAGED,
                Stage.DIFFED,
                Stage.GENERATED,
                Stage.NORMALIZED,
                Stage.COMMITTED,
            ],
        )
        payload = generator.payloads[0]
        self.assertIsInstance(payload, DiffPayload)
        self.assertEqual(payload.text, HELLO.patch)
        self.assertFalse(payload.truncated)

    def test_auto_stage_when_nothing_staged(self) -> None:
        repo = FakeRepository(unstaged=[HELLO])
        outcome, _ = self.run_pipeline(repo, FakeGenerator())
        self.assertIsInstance(outcome, Committed)
        self.assertEqual(repo.calls[:3], ["has_staged_changes", "stage_all_changes", "has_staged_changes"])

    def test_nothing_to_stage(self) -> None:
        repo = FakeRepository()
        generator = FakeGenerator()
        outcome, stages = self.run_pipeline(repo, generator)
        self.assertIsInstance(outcome, NoChanges)
        self.assertTrue(outcome.succeeded)
        self.assertEqual(stages, [Stage.START, Stage.NO_CHANGES])
        self.assertEqual(generator.payloads, [])
        self.assertNotIn("commit", repo.calls)

    def test_auto_stage_disabled(self) -> None:
        repo = FakeRepository(unstaged=[HELLO])
        generator = FakeGenerator()
        outcome, _ = self.run_pipeline(repo, generator, auto_stage=False)
        self.assertIsInstance(outcome, NoChanges)
        self.assertIn("auto-staging is disabled", outcome.reason)
        self.assertEqual(repo.calls, ["has_staged_changes"])
        self.assertEqual(generator.payloads, [])

    def test_empty_diff_is_no_changes(self) -> None:
        repo = FakeRepository(staged=[HELLO], diff_error=NoStagedChangesError("No staged changes"))
        outcome, _ = self.run_pipeline(repo, FakeGenerator())
        self.assertIsInstance(outcome, NoChanges)

    def test_preview_never_commits(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        outcome, stages = self.run_pipeline(repo, FakeGenerator(), preview=True)
        self.assertEqual(outcome, Previewed(message=MESSAGE))
        self.assertEqual(stages[-1], Stage.PREVIEWED)
        self.assertNotIn("commit", repo.calls)

    def test_missing_credentials_touch_nothing(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        generator = FakeGenerator(credential_error=ConfigurationError("OPENROUTER_API_KEY is not set"))
        outcome, stages = self.run_pipeline(repo, generator)
        self.assertIsInstance(outcome, Failed)
        self.assertFalse(outcome.succeeded)
        self.assertIsInstance(outcome.error, ConfigurationError)
        self.assertEqual(outcome.failed_at, Stage.START)
        self.assertEqual(stages, [Stage.START, Stage.FAILED])
        self.assertEqual(repo.calls, [])
        self.assertEqual(generator.payloads, [])

    def test_generation_failure_does_not_commit(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        error = GenerationServiceError("timeout")
        outcome, _ = self.run_pipeline(repo, FakeGenerator(error=error))
        self.assertEqual(outcome, Failed(error=error, failed_at=Stage.DIFFED))
        self.assertNotIn("commit", repo.calls)

    def test_invalid_message_does_not_commit(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        outcome, _ = self.run_pipeline(repo, FakeGenerator(error=InvalidMessageError("empty")))
        self.assertIsInstance(outcome.error, InvalidMessageError)
        self.assertNotIn("commit", repo.calls)

    def test_non_conforming_message_is_still_committed(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        message = CommitMessage("Update hello", "", False)
        outcome, _ = self.run_pipeline(repo, FakeGenerator(message=message))
        self.assertEqual(outcome.message, message)
        self.assertEqual(repo.commits, [message])

    def test_commit_errors(self) -> None:
        for error in (MissingIdentityError("no identity"), CommitError("index.lock exists")):
            with self.subTest(error=type(error).__name__):
                repo = FakeRepository(staged=[HELLO], commit_error=error)
                outcome, _ = self.run_pipeline(repo, FakeGenerator())
                self.assertIs(outcome.error, error)
                self.assertEqual(outcome.failed_at, Stage.NORMALIZED)

    def test_repository_error(self) -> None:
        repo = FakeRepository(diff_error=RepositoryError("not a git repository"), staged=[HELLO])
        outcome, _ = self.run_pipeline(repo, FakeGenerator())
        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.failed_at, Stage.STAGED)

    def test_diff_bounded_by_option(self) -> None:
        other = FileChange(path="world.txt", kind=ChangeKind.ADDED, patch="+" + "w" * 200 + "\n")
        repo = FakeRepository(staged=[HELLO, other])
        generator = FakeGenerator()
        self.run_pipeline(repo, generator, max_diff_bytes=len(HELLO.patch) + 10)
        payload = generator.payloads[0]
        self.assertTrue(payload.truncated)
        self.assertEqual(payload.included, ("hello.txt",))
        self.assertEqual(payload.omitted, ("world.txt",))

    def test_failure_after_auto_stage_restores_index(self) -> None:
        unavailable = GenerationServiceError("Service Unavailable", 503)
        invalid = InvalidMessageError("empty")
        locked = CommitError("index.lock exists")
        cases = [
            (unavailable, FakeRepository(unstaged=[HELLO]), FakeGenerator(error=unavailable)),
            (invalid, FakeRepository(unstaged=[HELLO]), FakeGenerator(error=invalid)),
            (locked, FakeRepository(unstaged=[HELLO], commit_error=locked), FakeGenerator()),
        ]
        for error, repo, generator in cases:
            with self.subTest(error=type(error).__name__):
                outcome, _ = self.run_pipeline(repo, generator)
                self.assertIs(outcome.error, error)
                self.assertEqual(repo.calls[-1], "unstage_all_changes")
                self.assertEqual(repo.staged, [])
                self.assertEqual(repo.unstaged, [HELLO])

    def test_failure_keeps_changes_staged_by_the_user(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        outcome, _ = self.run_pipeline(repo, FakeGenerator(error=GenerationServiceError("timeout")))
        self.assertIsInstance(outcome, Failed)
        self.assertNotIn("unstage_all_changes", repo.calls)
        self.assertEqual(repo.staged, [HELLO])

    def test_preview_after_auto_stage_restores_index(self) -> None:
        repo = FakeRepository(unstaged=[HELLO])
        outcome, _ = self.run_pipeline(repo, FakeGenerator(), preview=True)
        self.assertIsInstance(outcome, Previewed)
        self.assertEqual(repo.calls[-1], "unstage_all_changes")
        self.assertEqual(repo.staged, [])

    def test_preview_keeps_changes_staged_by_the_user(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        self.run_pipeline(repo, FakeGenerator(), preview=True)
        self.assertNotIn("unstage_all_changes", repo.calls)
        self.assertEqual(repo.staged, [HELLO])

    def test_restore_failure_reports_original_error(self) -> None:
        repo = FakeRepository(unstaged=[HELLO], unstage_error=RepositoryError("index.lock exists"))
        error = GenerationServiceError("timeout")
        outcome, _ = self.run_pipeline(repo, FakeGenerator(error=error))
        self.assertIs(outcome.error, error)
        self.assertEqual(outcome.failed_at, Stage.DIFFED)

    def test_unexpected_exceptions_propagate(self) -> None:
        repo = FakeRepository(staged=[HELLO])
        with self.assertRaises(RuntimeError):
            Pipeline(repo, FakeGenerator(error=RuntimeError("bug"))).run()


if __name__ == "__main__":
    unittest.main()
