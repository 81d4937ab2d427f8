"""Dockship CLI — Typer-based command-line interface.

Provides the ``dockship`` command with the ``transfer`` and ``version``
subcommands.  All output uses Rich for formatted terminal display.
"""
