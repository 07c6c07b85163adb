"""
Diff handling for distill_commit.

See :mod:`distill_commit.diff.assembler` for how staged changes are turned
into a bounded payload for the generation service.
"""

from .assembler import DiffPayload, assemble  # noqa: F401
