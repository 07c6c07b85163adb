#!/usr/bin/env python
"""
Thin wrapper script to invoke the distill CLI.

Running ``python distill.py`` is equivalent to running the ``distill``
console script installed via ``pyproject.toml``.
"""

from distill_commit.cli import main


if __name__ == "__main__":
    main(prog_name="distill")
