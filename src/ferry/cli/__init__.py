"""
CLI layer for ferry.

Provides a Typer application that loads definition files and hands them
to the scheduler. All engine logic lives in ``ferry.framework`` and
``ferry.scheduling``; this package handles only argument parsing and
terminal output.

Entry point::

    ferry --help
"""

from ferry.cli.app import app

__all__ = ["app"]
