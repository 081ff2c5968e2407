"""trackerprobe - health checks for BitTorrent UDP trackers."""

from __future__ import annotations

__version__ = "0.1.0"
