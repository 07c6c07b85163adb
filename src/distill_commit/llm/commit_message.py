"""
Commit message validation and normalization.

Language models rarely return just the commit message. Responses come
wrapped in code fences or quotes, prefixed with "Here is the commit
message:" or followed by a paragraph explaining the choice, and reasoning
models add ``<think>`` blocks. :func:`normalize` strips these artifacts,
splits the result into a summary line and an optional body, and checks the
summary against the Conventional Commits shape::

    type(scope): description

Conformance is advisory: a message with a loosely formatted summary is
still accepted but flagged, because a correct message is more useful than
a rejected commit. Only an empty or overlong summary is rejected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from distill_commit.errors import InvalidMessageError


DEFAULT_MAX_SUMMARY_LENGTH = 100

COMMIT_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)

CONVENTIONAL_SUMMARY_RE = re.compile(
    r"^(?P<type>" + "|".join(COMMIT_TYPES) + r")"
    r"(?:\((?P<scope>[^()\r\n]+)\))?"
    r"(?P<breaking>!)?"
    r": (?P<description>\S.*)$",
    re.IGNORECASE,
)

_THINKING_PATTERNS = [
    r"<think>.*?</think>",
    r"<thinking>.*?</thinking>",
    r"<thought>.*?</thought>",
    r"<reasoning>.*?</reasoning>",
]

_OPENING_FENCE_RE = re.compile(r"\A```[\w+.-]*[ \t]*(?:\n|\Z)")
_CLOSING_FENCE_RE = re.compile(r"(?:\A|\n)[ \t]*```[ \t]*\Z")
_QUOTE_CHARS = "\"'`"

# "Commit message: feat: ..." on a single line
_LABEL_RE = re.compile(
    r"^(?:suggested |proposed |generated )?commit message:[ \t]+(?=\S)",
    re.IGNORECASE,
)
_PREAMBLE_STARTS = (
    "here is",
    "here's",
    "sure",
    "certainly",
    "okay",
    "based on",
    "looking at",
)
_EXPLANATION_STARTS = (
    "this commit message",
    "this message",
    "the commit message above",
    "the above",
    "explanation:",
    "let me know",
    "i chose",
    "i used",
)


def strip_thinking_tags(text: str) -> str:
    """Remove reasoning blocks such as ``<think>...</think>`` from ``text``.

    >>> strip_thinking_tags("<think>reasoning...</think>Answer")
    'Answer'
    """
    result = text
    for pattern in _THINKING_PATTERNS:
        result = re.sub(pattern, "", result, flags=re.DOTALL | re.IGNORECASE)
    return result.strip()


def _strip_fences(text: str) -> str:
    if _OPENING_FENCE_RE.match(text):
        text = _OPENING_FENCE_RE.sub("", text, count=1)
    # A closing fence is dropped even when the opening one is missing
    return _CLOSING_FENCE_RE.sub("", text, count=1)


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _QUOTE_CHARS:
        return text[1:-1]
    return text


def _is_preamble(line: str) -> bool:
    stripped = line.strip()
    if CONVENTIONAL_SUMMARY_RE.match(stripped):
        return False
    lower = stripped.lower()
    if lower.endswith(":") and ("commit message" in lower or lower.startswith(_PREAMBLE_STARTS)):
        return True
    return lower.rstrip("!.") in {"sure", "certainly", "okay"}


def _strip_preamble(text: str) -> str:
    lines = text.splitlines()
    if len(lines) > 1 and _is_preamble(lines[0]):
        return "\n".join(lines[1:])
    return _LABEL_RE.sub("", text, count=1)


def _strip_explanation(text: str) -> str:
    """Drop a trailing paragraph that talks about the message instead of the change."""
    lines = text.splitlines()
    boundaries = [index for index, line in enumerate(lines) if not line.strip()]
    if len(lines) > 1:
        # The summary line always stands alone, blank separator or not
        boundaries.append(1)
    if not boundaries:
        return text
    start = max(boundaries)
    if not any(line.strip() for line in lines[:start]):
        return text
    first = next((line.strip().lower() for line in lines[start:] if line.strip()), "")
    if first.startswith(_EXPLANATION_STARTS):
        return "\n".join(lines[:start])
    return text


def strip_artifacts(raw: str) -> str:
    """Remove wrapping and commentary around a generated commit message.

    Windows line endings are converted first. Every cleanup step is then
    applied repeatedly until the text stops changing, so nested wrappers (a
    quoted message inside a code fence, say) are removed completely.
    """
    text = raw.replace("\r\n", "\n").replace("\r", "\n").strip()
    while True:
        previous = text
        text = strip_thinking_tags(text)
        text = _strip_fences(text).strip()
        text = _strip_quotes(text).strip()
        text = _strip_preamble(text).strip()
        text = _strip_explanation(text).strip()
        if text == previous:
            return text


@dataclass(frozen=True)
class CommitMessage:
    """A normalized commit message.

    Attributes
    ----------
    summary : str
        The first line of the message. Never empty.
    body : str
        Optional body, without surrounding blank lines.
    conforming : bool
        True if ``summary`` has the Conventional Commits shape.
    """

    summary: str
    body: str = ""
    conforming: bool = False

    def render(self) -> str:
        """Return the full commit text: summary, blank line, body."""
        if self.body:
            return f"{self.summary}\n\n{self.body}"
        return self.summary

    def __str__(self) -> str:
        return self.render()

    def _match(self) -> Optional["re.Match[str]"]:
        return CONVENTIONAL_SUMMARY_RE.match(self.summary)

    @property
    def type(self) -> Optional[str]:
        match = self._match()
        return match.group("type").lower() if match else None

    @property
    def scope(self) -> Optional[str]:
        match = self._match()
        return match.group("scope") if match else None

    @property
    def breaking(self) -> bool:
        match = self._match()
        return bool(match and match.group("breaking"))

    @property
    def description(self) -> str:
        match = self._match()
        return match.group("description") if match else self.summary


def _body_from(lines: List[str]) -> str:
    body: List[str] = []
    for line in lines:
        line = line.rstrip()
        if not line and (not body or not body[-1]):
            continue
        body.append(line)
    while body and not body[-1]:
        body.pop()
    return "\n".join(body)


def normalize(raw: str, max_summary_length: int = DEFAULT_MAX_SUMMARY_LENGTH) -> CommitMessage:
    """Turn raw generated text into a :class:`CommitMessage`.

    Parameters
    ----------
    raw : str
        Text returned by the generation service.
    max_summary_length : int, optional
        Longest accepted summary line, in characters.

    Returns
    -------
    CommitMessage
        The normalized message. ``normalize(msg.render())`` returns an
        equal message.

    Raises
    ------
    InvalidMessageError
        If no summary remains after cleanup or the summary is too long.
    """
    text = strip_artifacts(raw)
    lines = text.splitlines()
    first = next((index for index, line in enumerate(lines) if line.strip()), None)
    if first is None:
        raise InvalidMessageError("Generated commit message is empty after cleanup")

    summary = lines[first].strip()
    if len(summary) > max_summary_length:
        raise InvalidMessageError(
            f"Commit summary is {len(summary)} characters long "
            f"(maximum {max_summary_length}): {summary!r}"
        )
    body = _body_from(lines[first + 1:])
    return CommitMessage(
        summary=summary,
        body=body,
        conforming=bool(CONVENTIONAL_SUMMARY_RE.match(summary)),
    )
