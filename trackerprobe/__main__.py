#!/usr/bin/env python3
"""Run the trackerprobe CLI with ``python -m trackerprobe``."""

from __future__ import annotations

from trackerprobe.cli.main import cli

if __name__ == "__main__":
    cli()
