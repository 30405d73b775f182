"""toolstream CLI bootstrap."""

from __future__ import annotations

from toolstream.cli import app

if __name__ == "__main__":
    app()
