"""Entry point for running the video mirror from a source checkout."""

from __future__ import annotations

from videomirror.cli import main

if __name__ == "__main__":
    main()
