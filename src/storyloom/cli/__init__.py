"""storyloom command-line interface.

The Typer application lives in :mod:`storyloom.cli.app`.
"""
