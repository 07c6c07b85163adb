"""
Language model integration for distill_commit.

This package contains the :class:`OpenRouterClient` for requesting a
commit message from the OpenRouter API and the :func:`normalize` function
that turns the generated text into a validated :class:`CommitMessage`.
"""

from .commit_message import CommitMessage, normalize  # noqa: F401
from .openrouter_client import (  # noqa: F401
    GenerationRequest,
    GenerationResponse,
    OpenRouterClient,
)
