"""
Command-line entry point for the clinic queue scheduling engine.
"""

from .cli import app


def main() -> None:
    # Delegate to Typer app so `uv run clinicq ...` works.
    app()
