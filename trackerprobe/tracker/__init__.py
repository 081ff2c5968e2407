"""UDP tracker protocol session and health checking."""

from __future__ import annotations

from trackerprobe.tracker.health import (
    CandidateProfile,
    CheckOutcome,
    TrackerHealthChecker,
    classify_outcomes,
)
from trackerprobe.tracker.udp_client import (
    AnnounceRequest,
    AnnounceResponse,
    TrackerAction,
    TrackerEvent,
    UDPTrackerSession,
)

__all__ = [
    "AnnounceRequest",
    "AnnounceResponse",
    "CandidateProfile",
    "CheckOutcome",
    "TrackerAction",
    "TrackerEvent",
    "TrackerHealthChecker",
    "UDPTrackerSession",
    "classify_outcomes",
]
