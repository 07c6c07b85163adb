"""
Top-level package for distill_commit.

This package exposes the main CLI entry point via the
``distill_commit.cli`` module and the commit pipeline via
``distill_commit.pipeline``.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
