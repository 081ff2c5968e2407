"""Command line interface for trackerprobe."""
