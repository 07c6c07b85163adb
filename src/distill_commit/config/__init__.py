"""
Configuration loading for distill_commit.

Reads the optional ``~/.distill/config.json`` file and the environment.
See :mod:`distill_commit.config.loader` for implementation details.
"""

from .loader import Settings, load_config  # noqa: F401
