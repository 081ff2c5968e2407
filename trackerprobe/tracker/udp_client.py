"""UDP Tracker Protocol (BEP 15) client session.

One session drives the CONNECT and ANNOUNCE exchanges against a single
resolved tracker address over a dedicated local socket. Nothing is cached
between sessions: the connection id lives and dies with the session.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
import struct
import time
import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from trackerprobe.utils.exceptions import (
    MessageError,
    TrackerApplicationError,
    TrackerReceiveError,
    TrackerSendError,
    TrackerSocketError,
    TrackerTimeoutError,
)

logger = logging.getLogger(__name__)

PROTOCOL_ID = 0x41727101980
DEFAULT_TIMEOUT = 5.0
RECEIVE_BUFFER_SIZE = 1024

_CONNECT_REQUEST = struct.Struct("!QII")
_CONNECT_RESPONSE = struct.Struct("!IIQ")
_ANNOUNCE_REQUEST = struct.Struct("!QII20s20sQQQIIIiH")
_ANNOUNCE_RESPONSE = struct.Struct("!IIIII")
_HEADER = struct.Struct("!II")

_COMPACT_PEER_SIZE = {socket.AF_INET: 6, socket.AF_INET6: 18}


class TrackerAction(Enum):
    """UDP tracker actions."""

    CONNECT = 0
    ANNOUNCE = 1
    SCRAPE = 2
    ERROR = 3


class TrackerEvent(Enum):
    """Tracker announce events."""

    NONE = 0
    COMPLETED = 1
    STARTED = 2
    STOPPED = 3


@dataclass
class TrackerResponse:
    """Decoded UDP tracker response."""

    action: TrackerAction
    transaction_id: int
    connection_id: int | None = None
    interval: int | None = None
    leechers: int | None = None
    seeders: int | None = None
    peers: list[tuple[str, int]] | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class AnnounceRequest:
    """Fields of an ANNOUNCE request other than the session header."""

    info_hash: bytes
    peer_id: bytes
    port: int
    event: TrackerEvent = TrackerEvent.STARTED
    downloaded: int = 0
    left: int = 0
    uploaded: int = 0
    # 0 lets the tracker use the datagram's source address
    ip: int = 0
    key: int = 0
    num_want: int = -1


@dataclass
class AnnounceResponse:
    """What a tracker returned for an ANNOUNCE."""

    interval: int
    leechers: int
    seeders: int
    peers: list[tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class Unconnected:
    """Session has not completed a CONNECT exchange."""


@dataclass(frozen=True)
class Connected:
    """Session holds a connection id issued by the tracker."""

    connection_id: int


SessionState = Union[Unconnected, Connected]


def generate_transaction_id() -> int:
    """Return a 32-bit transaction id derived from the current time.

    Transaction ids only correlate a response with the request pending on
    the same socket, so a fast non-cryptographic hash is enough.
    """
    return zlib.crc32(time.time_ns().to_bytes(8, "big"))


def encode_connect_request(transaction_id: int) -> bytes:
    """Encode a CONNECT request."""
    return _CONNECT_REQUEST.pack(
        PROTOCOL_ID,
        TrackerAction.CONNECT.value,
        transaction_id,
    )


def encode_announce_request(
    connection_id: int,
    transaction_id: int,
    request: AnnounceRequest,
) -> bytes:
    """Encode an ANNOUNCE request without options."""
    if len(request.info_hash) != 20:
        msg = f"Invalid info_hash length: {len(request.info_hash)}"
        raise MessageError(msg)
    if len(request.peer_id) != 20:
        msg = f"Invalid peer_id length: {len(request.peer_id)}"
        raise MessageError(msg)

    try:
        return _ANNOUNCE_REQUEST.pack(
            connection_id,
            TrackerAction.ANNOUNCE.value,
            transaction_id,
            request.info_hash,
            request.peer_id,
            request.downloaded,
            request.left,
            request.uploaded,
            request.event.value,
            request.ip,
            request.key,
            request.num_want,
            request.port,
        )
    except struct.error as e:
        msg = f"Cannot encode ANNOUNCE request: {e}"
        raise MessageError(msg) from e


def _decode_compact_peers(data: bytes, family: int) -> list[tuple[str, int]]:
    peer_size = _COMPACT_PEER_SIZE[family]
    peers = []
    for i in range(0, len(data) - peer_size + 1, peer_size):
        ip = str(ipaddress.ip_address(data[i : i + peer_size - 2]))
        port = int.from_bytes(data[i + peer_size - 2 : i + peer_size], "big")
        peers.append((ip, port))
    return peers


def decode_response(data: bytes, family: int = socket.AF_INET) -> TrackerResponse:
    """Decode a tracker response datagram.

    Args:
        data: Raw datagram
        family: Address family of the tracker, selects the compact peer size

    Raises:
        TrackerApplicationError: if the datagram is truncated or carries an
            unknown action

    """
    if len(data) < _HEADER.size:
        msg = f"Response too short: {len(data)} bytes"
        raise TrackerApplicationError(msg)

    raw_action, transaction_id = _HEADER.unpack_from(data)
    try:
        action = TrackerAction(raw_action)
    except ValueError:
        msg = f"Unknown response action {raw_action}"
        raise TrackerApplicationError(msg) from None

    if action == TrackerAction.CONNECT:
        if len(data) < _CONNECT_RESPONSE.size:
            msg = "Incomplete CONNECT response"
            raise TrackerApplicationError(msg, {"length": len(data)})
        _, _, connection_id = _CONNECT_RESPONSE.unpack_from(data)
        return TrackerResponse(
            action=action,
            transaction_id=transaction_id,
            connection_id=connection_id,
        )

    if action == TrackerAction.ANNOUNCE:
        if len(data) < _ANNOUNCE_RESPONSE.size:
            msg = "Incomplete ANNOUNCE response"
            raise TrackerApplicationError(msg, {"length": len(data)})
        _, _, interval, leechers, seeders = _ANNOUNCE_RESPONSE.unpack_from(data)
        return TrackerResponse(
            action=action,
            transaction_id=transaction_id,
            interval=interval,
            leechers=leechers,
            seeders=seeders,
            peers=_decode_compact_peers(data[_ANNOUNCE_RESPONSE.size :], family),
        )

    if action == TrackerAction.ERROR:
        return TrackerResponse(
            action=action,
            transaction_id=transaction_id,
            error_message=data[_HEADER.size :].decode("utf-8", errors="replace"),
        )

    # Scrape responses are never requested by this client
    return TrackerResponse(action=action, transaction_id=transaction_id)


def open_udp_socket(family: int) -> socket.socket:
    """Bind a non-blocking UDP socket on an ephemeral wildcard port."""
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.setblocking(False)
        wildcard = "::" if family == socket.AF_INET6 else "0.0.0.0"  # nosec B104
        sock.bind((wildcard, 0))
    except OSError as e:
        sock.close()
        msg = f"Failed to bind UDP socket: {e}"
        raise TrackerSocketError(msg) from e
    return sock


class UDPTrackerSession:
    """BEP 15 exchange with one tracker address over one socket."""

    def __init__(
        self,
        sock: socket.socket,
        tracker_addr: tuple,
        timeout: float = DEFAULT_TIMEOUT,
        receive_buffer_size: int = RECEIVE_BUFFER_SIZE,
    ):
        """Initialize the session.

        Args:
            sock: Bound non-blocking UDP socket owned by the caller
            tracker_addr: Resolved tracker socket address
            timeout: Seconds to wait for each response
            receive_buffer_size: Largest datagram accepted, exclusive

        """
        self.sock = sock
        self.tracker_addr = tracker_addr
        self.timeout = timeout
        self.receive_buffer_size = receive_buffer_size
        self.state: SessionState = Unconnected()

    @property
    def is_connected(self) -> bool:
        """Whether a CONNECT exchange has succeeded."""
        return isinstance(self.state, Connected)

    async def connect(self) -> None:
        """Run the CONNECT exchange and keep the issued connection id."""
        transaction_id = generate_transaction_id()
        response = await self._request(
            encode_connect_request(transaction_id),
            transaction_id,
            TrackerAction.CONNECT,
        )
        if not response.connection_id:
            msg = "Tracker issued an empty connection id"
            raise TrackerApplicationError(msg, {"tracker": self.tracker_addr[0]})
        self.state = Connected(response.connection_id)
        logger.debug(
            "Connected to tracker %s (connection_id=%#x)",
            self.tracker_addr[0],
            response.connection_id,
        )

    async def announce(self, request: AnnounceRequest) -> AnnounceResponse:
        """Run one ANNOUNCE exchange on the connected session."""
        state = self.state
        if not isinstance(state, Connected):
            msg = "Session is not connected; run connect first"
            raise TrackerApplicationError(msg)

        transaction_id = generate_transaction_id()
        response = await self._request(
            encode_announce_request(state.connection_id, transaction_id, request),
            transaction_id,
            TrackerAction.ANNOUNCE,
        )
        return AnnounceResponse(
            interval=response.interval,
            leechers=response.leechers,
            seeders=response.seeders,
            peers=response.peers or [],
        )

    async def _request(
        self,
        frame: bytes,
        transaction_id: int,
        expected: TrackerAction,
    ) -> TrackerResponse:
        await self._send(frame, expected)
        data = await self._receive(expected)
        response = decode_response(data, self.sock.family)

        if response.action != expected:
            if response.action == TrackerAction.ERROR:
                msg = f"Expected {expected.name} response, got ERROR response"
                raise TrackerApplicationError(
                    msg, {"tracker_message": response.error_message}
                )
            msg = f"Expected {expected.name} response, got {response.action.name} response"
            raise TrackerApplicationError(msg)

        if response.transaction_id != transaction_id:
            msg = f"{expected.name} response for another transaction"
            raise TrackerApplicationError(
                msg,
                {"expected": transaction_id, "received": response.transaction_id},
            )

        return response

    async def _send(self, frame: bytes, action: TrackerAction) -> None:
        loop = asyncio.get_running_loop()
        try:
            bytes_sent = await loop.sock_sendto(self.sock, frame, self.tracker_addr)
        except OSError as e:
            msg = f"Failed to send {action.name} request: {e}"
            raise TrackerSocketError(msg) from e

        if bytes_sent != len(frame):
            msg = f"Failed to send the entire {action.name} request"
            raise TrackerSendError(msg, {"sent": bytes_sent, "length": len(frame)})

    async def _receive(self, action: TrackerAction) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            data, addr = await asyncio.wait_for(
                loop.sock_recvfrom(self.sock, self.receive_buffer_size),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            msg = f"Timed out waiting for {action.name} response"
            raise TrackerTimeoutError(
                msg, {"tracker": self.tracker_addr[0], "timeout": self.timeout}
            ) from None
        except OSError as e:
            msg = f"Failed to receive {action.name} response: {e}"
            raise TrackerSocketError(msg) from e

        if len(data) >= self.receive_buffer_size:
            msg = f"Failed to read the entire {action.name} response. Buffer too small?"
            raise TrackerReceiveError(msg, {"buffer_size": self.receive_buffer_size})

        logger.debug(
            "Received %s response from %s (%d bytes)",
            action.name,
            addr[0],
            len(data),
        )
        return data
