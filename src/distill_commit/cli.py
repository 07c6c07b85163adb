"""
Command line interface for the distill tool.

This module defines the ``main`` function which is used as the entry
point when executing the ``distill`` command. It loads the configuration,
builds the Git and OpenRouter clients, runs the commit pipeline and turns
the resulting outcome into console output and an exit code.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Type

import click

from distill_commit import __version__
from distill_commit.config.loader import Settings, load_config
from distill_commit.errors import (
    CommitError,
    ConfigurationError,
    DistillError,
    EmptyResponseError,
    GenerationServiceError,
    InvalidMessageError,
    MissingIdentityError,
    RepositoryError,
)
from distill_commit.llm.commit_message import CommitMessage
from distill_commit.llm.openrouter_client import OpenRouterClient
from distill_commit.pipeline import (
    Committed,
    Failed,
    NoChanges,
    Pipeline,
    Previewed,
    RunOptions,
    RunOutcome,
    Stage,
)
from distill_commit.vcs.git_client import GitClient

# Create a module-level logger. Attach a null handler and disable
# propagation to avoid logging errors when the root logger's stream is
# closed (such as during unit tests). When logging is configured by
# the CLI, root handlers will be added and messages will propagate.
logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_INVALID_USAGE = 2
EXIT_REPOSITORY_ERROR = 3
EXIT_CONFIG_ERROR = 5
EXIT_LLM_FAILURE = 7
EXIT_EMPTY_RESPONSE = 8
EXIT_INVALID_MESSAGE = 9
EXIT_MISSING_IDENTITY = 10
EXIT_COMMIT_FAILURE = 11

# Checked in order, so subclasses must come before their bases.
ERROR_EXIT_CODES: List[Tuple[Type[DistillError], int, str]] = [
    (ConfigurationError, EXIT_CONFIG_ERROR, "Set OPENROUTER_API_KEY or fix ~/.distill/config.json"),
    (RepositoryError, EXIT_REPOSITORY_ERROR, "Run distill inside a Git working tree"),
    (GenerationServiceError, EXIT_LLM_FAILURE, "Check your network connection and API key"),
    (EmptyResponseError, EXIT_EMPTY_RESPONSE, "Try again or choose a different model with --model"),
    (InvalidMessageError, EXIT_INVALID_MESSAGE, "Try again or choose a different model with --model"),
    (MissingIdentityError, EXIT_MISSING_IDENTITY, "Configure git user.name and user.email"),
    (CommitError, EXIT_COMMIT_FAILURE, "Your staged changes are untouched; commit manually"),
]

_STAGE_MESSAGES = {
    Stage.STAGED: "Staged changes ready",
    Stage.DIFFED: "Diff assembled",
    Stage.GENERATED: "Commit message generated",
    Stage.NORMALIZED: "Commit message validated",
}


# ---------------------------------------------------------------------------
# Status display utilities
# ---------------------------------------------------------------------------

def print_info(message: str, indent: int = 0):
    """Print an info message."""
    prefix = "  " * indent
    click.echo(f"{prefix}ℹ {message}", err=False)


def print_success(message: str, indent: int = 0):
    """Print a success message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✓ {message}", err=False)


def print_warning(message: str, indent: int = 0):
    """Print a warning message."""
    prefix = "  " * indent
    click.echo(f"{prefix}⚠ {message}", err=False)


def print_error(message: str, indent: int = 0):
    """Print an error message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


def print_message_box(message: CommitMessage):
    """Print the commit message inside a box."""
    lines = message.render().splitlines()
    width = min(max(len(line) for line in lines) + 2, 76)
    click.echo("┌" + "─" * width + "┐")
    for line in lines:
        click.echo(f"│ {line.ljust(width - 2)} │" if len(line) <= width - 2 else f"│ {line}")
    click.echo("└" + "─" * width + "┘")


def report_stage(stage: Stage) -> None:
    """Pipeline observer printing progress for intermediate stages."""
    text = _STAGE_MESSAGES.get(stage)
    if text:
        print_success(text)


# ---------------------------------------------------------------------------
# Outcome rendering
# ---------------------------------------------------------------------------

def exit_code_for(outcome: RunOutcome) -> int:
    """Return the process exit code for ``outcome``."""
    if not isinstance(outcome, Failed):
        return EXIT_SUCCESS
    for error_cls, code, _hint in ERROR_EXIT_CODES:
        if isinstance(outcome.error, error_cls):
            return code
    return EXIT_GENERIC_ERROR


def _hint_for(error: DistillError) -> Optional[str]:
    for error_cls, _code, hint in ERROR_EXIT_CODES:
        if isinstance(error, error_cls):
            return hint
    return None


def _show_message(outcome) -> None:
    message: CommitMessage = outcome.message
    click.echo("\nGenerated commit message:")
    print_message_box(message)
    if not message.conforming:
        print_warning("Summary does not follow the Conventional Commits format (type(scope): description)")
    payload = outcome.payload
    if payload is not None and payload.truncated:
        print_warning(f"Diff was truncated to {payload.size} bytes for generation")
        if payload.omitted:
            print_info(f"{len(payload.omitted)} file(s) not shown to the model", indent=1)


def render_outcome(outcome: RunOutcome, repository: GitClient) -> None:
    """Print the result of a pipeline run."""
    if isinstance(outcome, Previewed):
        _show_message(outcome)
        print_info("Dry run mode - commit message generated but not committed.")
    elif isinstance(outcome, Committed):
        _show_message(outcome)
        try:
            branch = repository.get_current_branch()
        except RepositoryError as exc:
            logger.debug("Could not determine current branch: %s", exc)
            branch = None
        where = f" on {click.style(branch, fg='cyan', bold=True)}" if branch else ""
        print_success(f"Committed {outcome.commit_id[:7]}{where}")
    elif isinstance(outcome, NoChanges):
        print_warning(outcome.reason)
    elif isinstance(outcome, Failed):
        print_error(str(outcome.error))
        hint = _hint_for(outcome.error)
        if hint:
            print_info(hint, indent=1)


def _apply_overrides(
    settings: Settings,
    model: Optional[str],
    max_diff_bytes: Optional[int],
    timeout: Optional[float],
) -> Settings:
    overrides = {}
    if model:
        overrides["model"] = model
    if max_diff_bytes is not None:
        overrides["max_diff_bytes"] = max_diff_bytes
    if timeout is not None:
        overrides["request_timeout"] = timeout
    return dataclasses.replace(settings, **overrides) if overrides else settings


@click.command()
@click.option("--no-auto-stage", is_flag=True, help="Don't stage all changes when nothing is staged.")
@click.option("--dry-run", is_flag=True, help="Generate the commit message but don't commit.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose (debug) output.")
@click.option("--model", type=str, default=None, help="OpenRouter model identifier to use.")
@click.option(
    "--max-diff-bytes",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum size of the diff sent to the model, in bytes.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Request timeout in seconds.",
)
@click.version_option(version=__version__, prog_name="distill")
def main(
    no_auto_stage: bool,
    dry_run: bool,
    verbose: bool,
    model: Optional[str],
    max_diff_bytes: Optional[int],
    timeout: Optional[float],
) -> None:
    """Generate a Conventional Commits message for your staged changes and commit.

    When nothing is staged, all changes are staged first unless
    --no-auto-stage is given.
    """
    # Configure logging. Use force=True to ensure handlers are reconfigured
    # on subsequent invocations (important for tests).
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )

    ctx = click.get_current_context(silent=True)

    try:
        try:
            settings = load_config()
        except ConfigurationError as exc:
            print_error(f"Configuration error: {exc}")
            raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
        settings = _apply_overrides(settings, model, max_diff_bytes, timeout)
        logger.debug("Using model %s", settings.model)

        generator = OpenRouterClient(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.base_url,
            request_timeout=settings.request_timeout,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            max_summary_length=settings.max_summary_length,
        )
        cwd = Path.cwd()
        # Outside a repository Git itself reports the problem on first use
        repository = GitClient(GitClient.find_repo_root(cwd) or cwd)
        options = RunOptions(
            auto_stage=not no_auto_stage,
            preview=dry_run,
            max_diff_bytes=settings.max_diff_bytes,
        )

        print_info(f"Model: {settings.model}")
        outcome = Pipeline(repository, generator, options, observer=report_stage).run()
        render_outcome(outcome, repository)
        raise click.exceptions.Exit(exit_code_for(outcome))

    except click.exceptions.Exit:
        # Click uses its own Exit exception; re-raise to let Click handle it
        raise
    except Exception as exc:
        # Catch any other unhandled errors
        logging.exception("Unhandled error: %s", exc)
        print_error(f"Unexpected error: {exc}")
        ctx.exit(EXIT_GENERIC_ERROR)
