"""Pydantic models for trackerprobe.

Provides validated configuration models and the enums shared between the
tracker health checker and its callers.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CheckError(str, Enum):
    """Verdict for a candidate that is not fully working.

    Listed in the order the classifier gives them precedence, after DNS
    resolution which short-circuits everything else.
    """

    DNS_RESOLUTION_FAILED = "dns_resolution_failed"
    OPERATIONAL_ERROR = "operational_error"
    PARTIAL_TIMEOUT = "partial_timeout"
    TIMEOUT = "timeout"


class ProbeConfig(BaseModel):
    """UDP tracker probe configuration."""

    timeout: float = Field(
        default=5.0,
        ge=0.1,
        le=120.0,
        description="Timeout in seconds for each CONNECT/ANNOUNCE round trip",
    )
    max_concurrent_checks: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum number of candidates probed in parallel",
    )
    receive_buffer_size: int = Field(
        default=1024,
        ge=64,
        le=65535,
        description="Receive buffer size in bytes; a response filling it is rejected",
    )
    info_hash_seed: str = Field(
        default="tracker_test",
        description="Seed hashed with SHA-1 into the synthetic probe info hash",
    )
    peer_id_seed: str = Field(
        default="tracker",
        description="Seed hashed with SHA-1 into the synthetic probe peer id",
    )
    left: int = Field(
        default=100,
        ge=0,
        description="Bytes left advertised in probe announces",
    )

    @field_validator("info_hash_seed", "peer_id_seed")
    @classmethod
    def validate_seed(cls, v):
        """Validate that seeds are not empty."""
        if not v:
            msg = "Seed cannot be empty"
            raise ValueError(msg)
        return v


class OutputConfig(BaseModel):
    """Candidate input and result output configuration."""

    candidates_file: str = Field(
        default="candidates.txt",
        description="Candidate list read by the check and clean commands",
    )
    output_dir: str = Field(default=".", description="Directory for result files")
    hosts_file: str = Field(
        default="udp_hosts.txt",
        description="Working candidates in canonical form",
    )
    ipv4_file: str = Field(
        default="udp_ipv4s.txt",
        description="Distinct IPv4 addresses of working candidates",
    )
    ipv6_file: str = Field(
        default="udp_ipv6s.txt",
        description="Distinct IPv6 addresses of working candidates",
    )
    shuffle: bool = Field(
        default=True,
        description="Shuffle result files; sorted otherwise",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Use structured JSON logging",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    probe: ProbeConfig = Field(
        default_factory=ProbeConfig,
        description="Probe configuration",
    )
    output: OutputConfig = Field(
        default_factory=OutputConfig,
        description="Input/output configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
