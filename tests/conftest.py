"""Pytest configuration and shared fixtures for trackerprobe tests."""

from __future__ import annotations

import asyncio
import logging
import socket
import struct

import pytest
import pytest_asyncio

from trackerprobe.config.config import ENV_MAPPINGS, reset_config

FAKE_CONNECTION_ID = 0x1122334455667788


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("tracker", "marks tests as tracker protocol tests"),
        ("candidates", "marks tests as candidate list tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
        ("resilience", "marks tests as concurrency gate tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep user config files and TRACKERPROBE_* variables out of tests."""
    for env_name in ENV_MAPPINGS:
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)


class FakeUDPTracker(asyncio.DatagramProtocol):
    """Minimal BEP 15 tracker on localhost.

    ``mode`` selects the behaviour:
        ok: answer CONNECT and ANNOUNCE, listing the announcing port as a peer
        no_echo: like ok but never list the announcing port
        silent: never answer
        error: answer CONNECT with an ERROR response
        wrong_action: answer ANNOUNCE with a CONNECT response
        wrong_transaction: answer CONNECT with another transaction id
        zero_connection: answer CONNECT with connection id 0
        oversized: answer ANNOUNCE with a datagram filling the client buffer
    """

    def __init__(self):
        self.mode = "ok"
        self.connection_id = FAKE_CONNECTION_ID
        self.transport = None
        self.address = None
        self.requests: list[bytes] = []
        self.events: list[int] = []
        self.connection_ids: list[int] = []

    def connection_made(self, transport):
        self.transport = transport
        self.address = transport.get_extra_info("sockname")

    def datagram_received(self, data, addr):
        self.requests.append(data)
        if self.mode == "silent":
            return

        if len(data) == 16:
            reply = self._connect_reply(data)
        elif len(data) == 98:
            reply = self._announce_reply(data)
        else:
            return
        self.transport.sendto(reply, addr)

    def _connect_reply(self, data):
        _, _, transaction_id = struct.unpack("!QII", data)
        if self.mode == "error":
            return struct.pack("!II", 3, transaction_id) + b"go away"
        if self.mode == "wrong_transaction":
            transaction_id ^= 1
        if self.mode == "zero_connection":
            return struct.pack("!IIQ", 0, transaction_id, 0)
        return struct.pack("!IIQ", 0, transaction_id, self.connection_id)

    def _announce_reply(self, data):
        fields = struct.unpack("!QII20s20sQQQIIIiH", data)
        connection_id, transaction_id, event, port = (
            fields[0],
            fields[2],
            fields[8],
            fields[12],
        )
        self.connection_ids.append(connection_id)
        self.events.append(event)

        if self.mode == "wrong_action":
            return struct.pack("!IIQ", 0, transaction_id, self.connection_id)

        header = struct.pack("!IIIII", 1, transaction_id, 1800, 3, 5)
        if self.mode == "oversized":
            return header + b"\x00" * 2048

        peer_port = port if self.mode != "no_echo" else (port + 1) % 65536
        peers = socket.inet_aton("10.0.0.1") + (6881).to_bytes(2, "big")
        peers += socket.inet_aton("127.0.0.1") + peer_port.to_bytes(2, "big")
        return header + peers


@pytest_asyncio.fixture
async def fake_tracker():
    """Run a FakeUDPTracker on an ephemeral localhost port."""
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        FakeUDPTracker,
        local_addr=("127.0.0.1", 0),
    )
    yield protocol
    transport.close()
