"""Tracker health checks.

A candidate is healthy only when every address its host resolves to
completes CONNECT and a probe ANNOUNCE, and the tracker lists the probe's
own port among the returned peers. Anything less is folded into a single
``CheckError`` verdict.
"""

from __future__ import annotations

import asyncio
import hashlib
import ipaddress
import logging
import socket
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from trackerprobe.candidates import TrackerCandidate, TransportType
from trackerprobe.config import get_config
from trackerprobe.models import CheckError, ProbeConfig
from trackerprobe.tracker.udp_client import (
    AnnounceRequest,
    TrackerEvent,
    UDPTrackerSession,
    open_udp_socket,
)
from trackerprobe.utils.exceptions import (
    CandidateCheckError,
    TrackerProbeError,
    TrackerTimeoutError,
    ValidationError,
)
from trackerprobe.utils.logging_config import LoggingContext
from trackerprobe.utils.resilience import ConcurrencyGate

logger = logging.getLogger(__name__)


class AddressStatus(Enum):
    """Result of probing a single resolved address."""

    OK = "ok"
    TIMEOUT = "timeout"
    OPERATIONAL_ERROR = "operational_error"


@dataclass
class AddressOutcome:
    """Probe result for one resolved address."""

    address: tuple
    status: AddressStatus
    rtt_ms: int | None = None


@dataclass
class CandidateProfile:
    """A candidate whose every resolved address is working."""

    candidate: TrackerCandidate
    addresses: list[tuple] = field(default_factory=list)
    rtt_ms: int = 0


@dataclass
class CheckOutcome:
    """Verdict for one candidate: a profile or an error, never both."""

    candidate: TrackerCandidate
    profile: CandidateProfile | None = None
    error: CheckError | None = None

    def __post_init__(self):
        """Enforce that exactly one of profile and error is set."""
        if (self.profile is None) == (self.error is None):
            msg = "CheckOutcome needs exactly one of profile or error"
            raise ValueError(msg)

    @property
    def ok(self) -> bool:
        """Whether the candidate is fully working."""
        return self.profile is not None


def format_address(address: tuple) -> str:
    """Format a socket address as ``ip:port`` or ``[ip]:port``."""
    host, port = address[0], address[1]
    if ipaddress.ip_address(host).version == 6:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def is_ipv4(address: tuple) -> bool:
    """Whether a socket address is IPv4."""
    return ipaddress.ip_address(address[0]).version == 4


def classify_outcomes(outcomes: list[AddressOutcome]) -> CheckError | None:
    """Fold per-address outcomes into a verdict, None meaning healthy.

    Operational errors outrank partial timeouts, which outrank a full
    timeout.
    """
    if not outcomes:
        return CheckError.DNS_RESOLUTION_FAILED

    if all(o.status == AddressStatus.OK for o in outcomes):
        return None

    if any(o.status == AddressStatus.OPERATIONAL_ERROR for o in outcomes):
        return CheckError.OPERATIONAL_ERROR

    timeouts = sum(1 for o in outcomes if o.status == AddressStatus.TIMEOUT)
    if timeouts < len(outcomes):
        return CheckError.PARTIAL_TIMEOUT

    return CheckError.TIMEOUT


def mean_rtt_ms(rtts: list[int]) -> int:
    """Integer mean of per-address round-trip times in milliseconds."""
    if not rtts:
        return 0
    return sum(rtts) // len(rtts)


class TrackerHealthChecker:
    """Checks UDP tracker candidates, bounded by a concurrency gate."""

    def __init__(
        self,
        config: ProbeConfig | None = None,
        gate: ConcurrencyGate | None = None,
    ):
        """Initialize the health checker.

        Args:
            config: Probe settings; the global configuration when omitted
            gate: Admission control for check_all; sized from config when
                omitted

        """
        self.config = config or get_config().probe
        self.gate = gate or ConcurrencyGate(self.config.max_concurrent_checks)
        # The probe never announces a real torrent
        self.info_hash = hashlib.sha1(self.config.info_hash_seed.encode()).digest()  # nosec B324
        self.peer_id = hashlib.sha1(self.config.peer_id_seed.encode()).digest()  # nosec B324

    async def resolve(self, candidate: TrackerCandidate) -> list[tuple[int, tuple]]:
        """Resolve a candidate to distinct (family, sockaddr) pairs.

        Raises:
            CandidateCheckError: DNS_RESOLUTION_FAILED if the lookup fails or
                returns nothing

        """
        if not candidate.host:
            raise CandidateCheckError(CheckError.DNS_RESOLUTION_FAILED, candidate)

        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                candidate.host,
                candidate.port,
                type=socket.SOCK_DGRAM,
            )
        except (OSError, UnicodeError) as e:
            logger.debug("DNS resolution failed for %s: %s", candidate, e)
            raise CandidateCheckError(
                CheckError.DNS_RESOLUTION_FAILED, candidate
            ) from e

        addresses: dict[tuple, int] = {}
        for family, _type, _proto, _canonname, sockaddr in infos:
            if family in (socket.AF_INET, socket.AF_INET6):
                addresses.setdefault(sockaddr, family)

        if not addresses:
            raise CandidateCheckError(CheckError.DNS_RESOLUTION_FAILED, candidate)

        return [(family, sockaddr) for sockaddr, family in addresses.items()]

    async def check(self, candidate: TrackerCandidate) -> CandidateProfile:
        """Probe every resolved address of a candidate.

        Returns:
            The candidate's profile when all addresses work

        Raises:
            CandidateCheckError: with the classified verdict otherwise
            ValidationError: for a non-UDP candidate

        """
        if candidate.transport_type != TransportType.UDP:
            msg = "Only UDP candidates can be checked"
            raise ValidationError(msg, {"candidate": str(candidate)})

        with LoggingContext("tracker check", candidate=str(candidate)):
            resolved = await self.resolve(candidate)
            logger.debug(
                "%s resolved to %s",
                candidate,
                ", ".join(format_address(addr) for _, addr in resolved),
            )

            outcomes = await asyncio.gather(
                *(self._check_address(family, addr) for family, addr in resolved)
            )

            error = classify_outcomes(outcomes)
            if error is not None:
                raise CandidateCheckError(error, candidate)

            return CandidateProfile(
                candidate=candidate,
                addresses=[addr for _, addr in resolved],
                rtt_ms=mean_rtt_ms([o.rtt_ms or 0 for o in outcomes]),
            )

    async def check_all(
        self,
        candidates: list[TrackerCandidate],
        on_result: Callable[[CheckOutcome], None] | None = None,
    ) -> list[CheckOutcome]:
        """Check all candidates through the gate, in input order.

        Every candidate gets exactly one outcome. Candidates that cannot be
        checked, such as non-UDP ones, are reported as operational errors.

        Args:
            candidates: UDP candidates to check
            on_result: Called with each outcome as soon as it is known

        """

        async def _check_one(candidate: TrackerCandidate) -> CheckOutcome:
            try:
                profile = await self.gate.run(self.check(candidate))
                outcome = CheckOutcome(candidate, profile=profile)
                logger.debug("Success: %s (rtt %d ms)", candidate, profile.rtt_ms)
            except CandidateCheckError as e:
                outcome = CheckOutcome(candidate, error=e.kind)
                logger.debug("Failure: %s (%s)", candidate, e.kind.value)
            except TrackerProbeError as e:
                # Candidates that cannot be probed at all, e.g. HTTP ones
                outcome = CheckOutcome(candidate, error=CheckError.OPERATIONAL_ERROR)
                logger.warning("Cannot check %s: %s", candidate, e.message)
            if on_result is not None:
                on_result(outcome)
            return outcome

        return list(await asyncio.gather(*(_check_one(c) for c in candidates)))

    def _announce_request(self, port: int, event: TrackerEvent) -> AnnounceRequest:
        return AnnounceRequest(
            info_hash=self.info_hash,
            peer_id=self.peer_id,
            port=port,
            event=event,
            left=self.config.left,
        )

    async def _check_address(self, family: int, address: tuple) -> AddressOutcome:
        """Run connect and a probe announce against one address."""
        label = format_address(address)
        sock = None
        try:
            sock = open_udp_socket(family)
            local_port = sock.getsockname()[1]
            session = UDPTrackerSession(
                sock,
                address,
                timeout=self.config.timeout,
                receive_buffer_size=self.config.receive_buffer_size,
            )

            start = time.monotonic()
            await session.connect()
            response = await session.announce(
                self._announce_request(local_port, TrackerEvent.STARTED)
            )
            rtt_ms = int((time.monotonic() - start) * 1000)

            if not any(port == local_port for _, port in response.peers):
                logger.info(
                    "%s answered without listing the probe peer (%d peers)",
                    label,
                    len(response.peers),
                )
                return AddressOutcome(address, AddressStatus.OPERATIONAL_ERROR)

            await self._announce_stopped(session, local_port)
            return AddressOutcome(address, AddressStatus.OK, rtt_ms)

        except TrackerTimeoutError as e:
            logger.debug("%s: %s", label, e)
            return AddressOutcome(address, AddressStatus.TIMEOUT)
        except (TrackerProbeError, OSError) as e:
            logger.info("%s: %s", label, e)
            return AddressOutcome(address, AddressStatus.OPERATIONAL_ERROR)
        finally:
            if sock is not None:
                sock.close()

    async def _announce_stopped(self, session: UDPTrackerSession, port: int) -> None:
        """Remove the probe peer from the swarm; the result is not used."""
        try:
            await session.announce(self._announce_request(port, TrackerEvent.STOPPED))
        except (TrackerProbeError, OSError) as e:
            logger.debug("Ignoring failed STOPPED announce: %s", e)
