"""
Serial port enumeration and power box auto-discovery.

Lists the serial ports on the system and finds power boxes by sending the
ping command, then reading the description of every box that answers.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import serial.tools.list_ports

from powerbox_alpaca.protocol.commands import DESCRIBE_COMMAND, PING_COMMAND, PING_REPLY
from powerbox_alpaca.protocol.connection import PING_REPLY_BUDGET
from powerbox_alpaca.protocol.signature import parse_description
from powerbox_alpaca.protocol.transport import SerialTransport
from powerbox_alpaca.utils.exceptions import PortInUseError, PowerBoxException


logger = logging.getLogger(__name__)


@dataclass
class PortInfo:
    """Information about an available serial port."""

    name: str
    description: str
    hardware_id: str
    is_bluetooth: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "hardware_id": self.hardware_id,
            "is_bluetooth": self.is_bluetooth,
        }


@dataclass
class DiscoveredDevice:
    """A power box that answered the ping on some port."""

    port: str
    device_name: str
    hw_revision: str
    signature: str
    description: str

    def to_dict(self) -> dict:
        return {
            "port": self.port,
            "device_name": self.device_name,
            "hw_revision": self.hw_revision,
            "signature": self.signature,
            "description": self.description,
        }


def list_available_ports(include_bluetooth: bool = True) -> List[PortInfo]:
    """
    List all available serial ports on the system.

    Args:
        include_bluetooth: If False, filter out Bluetooth virtual ports.

    Returns:
        List of PortInfo objects sorted by port name.
    """
    ports = []

    for port in serial.tools.list_ports.comports():
        desc_lower = (port.description or "").lower()
        is_bluetooth = "bluetooth" in desc_lower or "bth" in desc_lower

        if not include_bluetooth and is_bluetooth:
            continue

        ports.append(
            PortInfo(
                name=port.device,
                description=port.description or "Unknown",
                hardware_id=port.hwid or "",
                is_bluetooth=is_bluetooth,
            )
        )

    ports.sort(key=lambda p: p.name)

    logger.debug(f"Found {len(ports)} serial ports")
    return ports


def scan_for_powerbox(
    timeout_seconds: float = 1.0,
    baud: int = 9600,
    skip_ports: Optional[List[str]] = None,
    include_bluetooth: bool = False,
) -> List[DiscoveredDevice]:
    """
    Probe every serial port for a power box.

    Args:
        timeout_seconds: Read timeout per port.
        baud: Line speed used for probing.
        skip_ports: Port names to leave alone.
        include_bluetooth: If True, also probe Bluetooth ports.

    Returns:
        Devices that answered the ping, in port order.
    """
    skip_ports = skip_ports or []
    discovered = []

    ports = list_available_ports(include_bluetooth=include_bluetooth)
    logger.info(f"Scanning {len(ports)} ports for power boxes...")

    start_time = time.time()

    for port_info in ports:
        if port_info.name in skip_ports:
            logger.debug(f"Skipping {port_info.name}: in skip list")
            continue

        device = _probe_port(port_info.name, port_info.description, timeout_seconds, baud)
        if device:
            discovered.append(device)

    elapsed_ms = int((time.time() - start_time) * 1000)
    logger.info(f"Scan complete: found {len(discovered)} power box(es) in {elapsed_ms}ms")

    if not discovered:
        logger.warning("No power box found on any serial port")

    return discovered


def _probe_port(port_name: str, description: str, timeout: float, baud: int) -> Optional[DiscoveredDevice]:
    """
    Check whether a power box sits on one port.

    Returns:
        DiscoveredDevice if the port answered the ping and the description,
        None otherwise.
    """
    logger.debug(f"Probing {port_name} ({description})...")

    transport = SerialTransport(port_name, baud=baud, timeout_seconds=timeout)
    try:
        transport.open()

        reply = transport.send_and_receive(PING_COMMAND, PING_REPLY_BUDGET)
        if reply.strip() != PING_REPLY:
            logger.debug(f"{port_name}: Unexpected ping reply {reply!r}")
            return None

        info = parse_description(transport.send_and_receive(DESCRIBE_COMMAND))
        logger.info(f"Found power box {info.name} on {port_name} (signature: {info.signature.raw})")

        return DiscoveredDevice(
            port=port_name,
            device_name=info.name,
            hw_revision=info.hw_revision,
            signature=info.signature.raw,
            description=description,
        )

    except PortInUseError:
        logger.debug(f"Skipping {port_name}: port in use")
        return None

    except PowerBoxException as e:
        logger.debug(f"Skipping {port_name}: {e}")
        return None

    finally:
        transport.close()


def find_first_powerbox(
    timeout_seconds: float = 1.0,
    baud: int = 9600,
    skip_ports: Optional[List[str]] = None,
) -> Optional[DiscoveredDevice]:
    """
    Find the first available power box.

    Returns:
        First discovered device, or None if none found.
    """
    devices = scan_for_powerbox(
        timeout_seconds=timeout_seconds,
        baud=baud,
        skip_ports=skip_ports,
    )

    if devices:
        if len(devices) > 1:
            logger.warning(f"Multiple power boxes found, using first one: {devices[0].port}")
        return devices[0]

    return None
