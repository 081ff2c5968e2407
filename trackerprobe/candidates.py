"""Tracker candidate descriptors and the candidate list file.

A candidate is written as ``transport://host:port[/suffix]``. The list file
holds one candidate per line; lines starting with ``#`` are comments and
lines that do not parse are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from pathlib import Path

import aiofiles

from trackerprobe.utils.exceptions import CandidateFormatError

logger = logging.getLogger(__name__)


class TransportType(Enum):
    """Tracker transports."""

    UDP = "udp"
    HTTP = "http"
    HTTPS = "https"

    @classmethod
    def from_string(cls, value: str) -> TransportType:
        """Parse a transport name, raising CandidateFormatError if unknown."""
        try:
            return cls(value)
        except ValueError:
            msg = f"Illegal protocol: {value!r}"
            raise CandidateFormatError(msg) from None


@total_ordering
@dataclass(frozen=True)
class TrackerCandidate:
    """One tracker endpoint under evaluation.

    Equality and hashing cover all four fields; ordering follows the
    canonical string.
    """

    host: str
    port: int
    transport_type: TransportType
    suffix: str | None = None

    def __str__(self) -> str:
        """Return the canonical string form."""
        return (
            f"{self.transport_type.value}://{self.host}:{self.port}{self.suffix or ''}"
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TrackerCandidate):
            return NotImplemented
        return str(self) < str(other)

    @classmethod
    def from_string(cls, value: str) -> TrackerCandidate:
        """Parse the canonical string form.

        Raises:
            CandidateFormatError: if the string is not
                ``transport://host:port[/suffix]``

        """
        parts = value.split(":")
        if len(parts) != 3:
            msg = "Invalid format. Expecting two ':'"
            raise CandidateFormatError(msg, {"value": value})

        transport_type = TransportType.from_string(parts[0])

        if not parts[1].startswith("//"):
            msg = (
                "Invalid format. Expecting proto://host:port[/suffix]. "
                "Missing '://' after proto"
            )
            raise CandidateFormatError(msg, {"value": value})
        host = parts[1][2:]

        port_str, slash, suffix = parts[2].partition("/")
        if not (port_str.isascii() and port_str.isdigit()) or int(port_str) > 65535:
            msg = "Expected port to be a numeric value"
            raise CandidateFormatError(msg, {"value": value})

        return cls(
            host=host,
            port=int(port_str),
            transport_type=transport_type,
            suffix=slash + suffix if slash else None,
        )


def parse_candidates(text: str) -> list[TrackerCandidate]:
    """Parse a candidate list, skipping comments and malformed lines."""
    candidates = []
    for line in text.split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            candidates.append(TrackerCandidate.from_string(line))
        except CandidateFormatError as e:
            logger.debug("Dropping candidate %r: %s", line, e.message)
    return candidates


def serialize_candidates(candidates: list[TrackerCandidate]) -> str:
    """Join candidates in canonical form, one per line."""
    return "\n".join(str(candidate) for candidate in candidates)


def remove_duplicates(candidates: list[TrackerCandidate]) -> list[TrackerCandidate]:
    """Drop repeated candidates, keeping the first occurrence of each."""
    return list(dict.fromkeys(candidates))


async def load_candidates(file_path: str | Path) -> list[TrackerCandidate]:
    """Read and parse a candidate list file.

    Raises:
        OSError: if the file cannot be read
        CandidateFormatError: if the file is not valid UTF-8

    """
    try:
        async with aiofiles.open(file_path, encoding="utf-8") as f:
            text = await f.read()
    except UnicodeDecodeError as e:
        msg = f"Candidate file is not valid UTF-8: {e.reason}"
        raise CandidateFormatError(msg, {"file": str(file_path)}) from e
    return parse_candidates(text)


async def clean_candidates(file_path: str | Path) -> tuple[int, int]:
    """Rewrite a candidate list deduplicated, sorted and in canonical form.

    Returns:
        Number of candidates loaded and number of unique candidates written

    """
    candidates = await load_candidates(file_path)
    loaded = len(candidates)
    unique = sorted(remove_duplicates(candidates))
    logger.info("Loaded %d candidates, %d unique", loaded, len(unique))

    async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
        await f.write(serialize_candidates(unique))
    return loaded, len(unique)
