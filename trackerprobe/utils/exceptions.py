"""Exception hierarchy for trackerprobe.

Lower-level failures raised by the UDP tracker session are folded into the
flat ``CheckError`` verdicts by the health checker; these classes are what
travels between the layers before that happens.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from trackerprobe.candidates import TrackerCandidate
    from trackerprobe.models import CheckError


class TrackerProbeError(Exception):
    """Base exception for all trackerprobe errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize trackerprobe error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(TrackerProbeError):
    """Network-related errors."""


class TrackerError(NetworkError):
    """Tracker communication errors."""


class TrackerSocketError(TrackerError):
    """Socket level failure while talking to a tracker."""


class TrackerSendError(TrackerError):
    """A request frame could not be sent in a single datagram."""


class TrackerReceiveError(TrackerError):
    """A response did not fit the receive buffer."""


class CandidateCheckError(TrackerError):
    """Health check verdict for a candidate that is not fully working."""

    def __init__(
        self,
        kind: CheckError,
        candidate: TrackerCandidate | None = None,
    ):
        """Initialize with the verdict and the candidate it belongs to."""
        details = {"candidate": str(candidate)} if candidate is not None else None
        super().__init__(f"Tracker check failed: {kind.value}", details)
        self.kind = kind
        self.candidate = candidate


class ProtocolError(TrackerProbeError):
    """BitTorrent UDP tracker protocol errors."""


class MessageError(ProtocolError):
    """Message parsing/serialization errors."""


class TrackerApplicationError(ProtocolError):
    """Tracker answered with something the pending request cannot accept."""


class ValidationError(TrackerProbeError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class CandidateFormatError(ValidationError):
    """Candidate descriptor does not match transport://host:port[/suffix]."""


class ProbeTimeoutError(TrackerProbeError):
    """Timeout errors."""


class TrackerTimeoutError(ProbeTimeoutError):
    """No tracker response arrived within the per-step timeout."""
