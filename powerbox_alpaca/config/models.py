"""
Configuration models using Pydantic for validation.

All configuration is loaded from config.json and validated at startup.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    ip: str = Field(default="0.0.0.0", description="IP address to bind to")
    port: int = Field(default=5000, ge=1, le=65535, description="HTTP port")
    discovery_enabled: bool = Field(
        default=True, description="Enable UDP discovery protocol"
    )


class SerialConfig(BaseModel):
    """Serial link configuration."""

    port: str = Field(
        default="",
        description="Serial port name or pyserial URL (e.g. /dev/ttyUSB0, socket://host:4000). Empty for auto-discover."
    )
    baud: int = Field(default=9600, description="Baud rate")
    timeout_seconds: float = Field(
        default=2.0, ge=0.1, le=30, description="Per-read timeout in seconds"
    )
    max_reply_bytes: int = Field(
        default=512, ge=16, le=4096, description="Byte budget for a single reply line"
    )
    handshake_attempts: int = Field(
        default=3, ge=1, le=10, description="Ping attempts before giving up on the device"
    )
    handshake_retry_delay_seconds: float = Field(
        default=5.0, ge=0.0, le=60.0, description="Delay between ping attempts"
    )
    auto_discover: bool = Field(
        default=True, description="Automatically scan for a power box"
    )
    scan_timeout_seconds: float = Field(
        default=1.0, ge=0.5, le=10.0, description="Timeout per port during auto-discovery scan"
    )


class PowerBoxConfig(BaseModel):
    """Driver behaviour for the connected power box."""

    poll_interval_seconds: float = Field(
        default=2.0, ge=0.2, le=60.0, description="Status refresh interval"
    )
    skip_redundant_writes: bool = Field(
        default=True,
        description="Do not send on/off commands to ports already in the requested state"
    )
    query_port_names: bool = Field(
        default=True, description="Read the port names stored on the appliance after connect"
    )


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _normalize_level(value: str) -> str:
    if value.upper() not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value}. Must be one of {list(LOG_LEVELS)}")
    return value.upper()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    file: Optional[str] = Field(
        default="powerbox_alpaca.log",
        description="Log file path (None for console only)"
    )
    module_levels: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-logger level overrides, e.g. {\"powerbox_alpaca.protocol\": \"DEBUG\"}"
    )
    protocol_capture: bool = Field(
        default=True, description="Keep recent TX/RX lines in memory for the protocol log endpoint"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        return _normalize_level(v)

    @field_validator("module_levels")
    @classmethod
    def validate_module_levels(cls, v):
        return {name: _normalize_level(level) for name, level in v.items()}


class SimulatorConfig(BaseModel):
    """Hardware simulator configuration."""

    enabled: bool = Field(default=False, description="Use simulator instead of real hardware")
    signature: str = Field(
        default="mmmmmmmmppppaa", description="Board signature advertised by the simulated box"
    )
    device_name: str = Field(default="BigPowerBox", description="Board name reported by >D#")
    hw_revision: str = Field(default="001", description="Hardware revision reported by >D#")
    input_volts: float = Field(default=12.6, ge=0, le=50, description="Simulated supply voltage")
    port_amps: float = Field(
        default=0.8, ge=0, le=50, description="Simulated draw of a fully powered port"
    )
    ambient_temperature: float = Field(default=12.0, description="Combined probe temperature (C)")
    ambient_humidity: float = Field(default=65.0, ge=0, le=100, description="Combined probe humidity (%)")
    probe_temperatures: List[float] = Field(
        default_factory=list, description="Discrete probe readings (C), cycled if shorter than the probe count"
    )
    noise: float = Field(default=0.0, ge=0, description="Reading noise amplitude")
    response_latency_ms: int = Field(
        default=0, ge=0, le=5000, description="Artificial response delay (ms)"
    )
    inject_timeout: bool = Field(default=False, description="Never answer (timeout injection)")

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v):
        """Validate the simulated board signature alphabet."""
        invalid = set(v) - set("smpatf")
        if invalid:
            raise ValueError(f"Invalid signature characters: {''.join(sorted(invalid))}")
        return v


class AppConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    server: ServerConfig = Field(default_factory=ServerConfig)
    serial: SerialConfig = Field(default_factory=SerialConfig)
    powerbox: PowerBoxConfig = Field(default_factory=PowerBoxConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
