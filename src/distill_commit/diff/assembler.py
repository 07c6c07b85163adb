"""
Assemble staged changes into a single bounded diff payload.

Remote generation services limit (and bill by) request size, so the diff
sent along with the prompt is capped at a configured number of bytes.
Truncation is predictable: whole per-file fragments are kept in the order
the repository client produced them, and accumulation stops at the first
fragment that no longer fits. Only when the very first fragment is too big
on its own is it cut, and then on a line boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from distill_commit.vcs.git_client import FileChange


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


@dataclass(frozen=True)
class DiffPayload:
    """Bounded diff text handed to the generation service.

    Attributes
    ----------
    text : str
        Concatenated patch fragments.
    truncated : bool
        True if any staged content was left out.
    included : Tuple[str, ...]
        Paths whose fragment appears in ``text`` (the last one possibly cut
        at a line boundary when it is the only fragment).
    omitted : Tuple[str, ...]
        Paths whose fragment was dropped entirely.
    """

    text: str
    truncated: bool = False
    included: Tuple[str, ...] = field(default_factory=tuple)
    omitted: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def size(self) -> int:
        """Size of ``text`` in UTF-8 bytes."""
        return _byte_len(self.text)


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def render_fragment(change: FileChange) -> str:
    """Return the text representing ``change`` inside the payload.

    Binary changes are replaced by a fixed placeholder line so that raw
    content never reaches the generation service.
    """
    label = f"{change.old_path} -> {change.path}" if change.old_path else change.path
    if change.binary:
        return f"Binary file {label} ({change.kind.value})\n"
    if not change.patch:
        return f"File {label} ({change.kind.value})\n"
    return change.patch


def _cut_at_line_boundary(fragment: str, max_bytes: int) -> str:
    kept: List[str] = []
    used = 0
    for line in fragment.splitlines(keepends=True):
        size = _byte_len(line)
        if used + size > max_bytes:
            break
        kept.append(line)
        used += size
    if kept:
        return "".join(kept)
    # Not even the first line fits: keep as many whole characters as possible
    return fragment.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")


def assemble(changes: Iterable[FileChange], max_bytes: int) -> DiffPayload:
    """Concatenate per-file fragments into a payload of at most ``max_bytes``.

    Parameters
    ----------
    changes : Iterable[FileChange]
        Staged changes in the order they should appear. The order is kept
        as is; fragments are never reordered or deduplicated.
    max_bytes : int
        Upper bound for the UTF-8 size of the payload text.

    Returns
    -------
    DiffPayload
        The assembled payload. ``truncated`` is set when anything was left
        out.

    Raises
    ------
    ValueError
        If ``max_bytes`` is not positive.
    """
    if max_bytes <= 0:
        raise ValueError(f"max_bytes must be positive, got {max_bytes}")

    fragments = [(change.path, render_fragment(change)) for change in changes]
    parts: List[str] = []
    included: List[str] = []
    omitted: List[str] = []
    used = 0
    truncated = False

    for index, (path, fragment) in enumerate(fragments):
        size = _byte_len(fragment)
        if used + size <= max_bytes:
            parts.append(fragment)
            included.append(path)
            used += size
            continue
        truncated = True
        if not parts:
            parts.append(_cut_at_line_boundary(fragment, max_bytes))
            included.append(path)
            omitted = [p for p, _ in fragments[index + 1:]]
        else:
            omitted = [p for p, _ in fragments[index:]]
        break

    payload = DiffPayload(
        text="".join(parts),
        truncated=truncated,
        included=tuple(included),
        omitted=tuple(omitted),
    )
    logger.debug(
        "Assembled diff payload: %d bytes from %d file(s), %d omitted, truncated=%s",
        payload.size,
        len(payload.included),
        len(payload.omitted),
        payload.truncated,
    )
    return payload
