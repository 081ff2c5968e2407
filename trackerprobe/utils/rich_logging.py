"""Rich console logging for trackerprobe."""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class CorrelationRichHandler(RichHandler):
    """RichHandler that prefixes each message with its correlation ID.

    Concurrent candidate checks interleave their log lines; the prefix is
    what groups the lines of one check together.
    """

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        """Render the message with the record's correlation ID in front."""
        corr_id = getattr(record, "correlation_id", None)
        if corr_id:
            message = f"[{corr_id}] {message}"
        return super().render_message(record, message)


def create_rich_handler(
    level: int | str = logging.NOTSET,
    console: Console | None = None,
    **kwargs: Any,
) -> CorrelationRichHandler:
    """Create the console log handler.

    Args:
        level: Handler level
        console: Console to write to; stderr when omitted
        **kwargs: Extra RichHandler options

    """
    kwargs.setdefault("show_path", False)
    kwargs.setdefault("rich_tracebacks", True)
    kwargs.setdefault("log_time_format", "[%Y-%m-%d %H:%M:%S]")
    return CorrelationRichHandler(
        level=level,
        console=console or Console(stderr=True),
        **kwargs,
    )
