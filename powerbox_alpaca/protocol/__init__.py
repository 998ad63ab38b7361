"""
Protocol package for power box serial communication.
"""

from powerbox_alpaca.protocol.transport import LinkTransport, SerialTransport, read_line
from powerbox_alpaca.protocol.connection import ConnectionManager
from powerbox_alpaca.protocol.signature import (
    BoardSignature,
    DeviceDescription,
    parse_signature,
    parse_description,
)
from powerbox_alpaca.protocol.commands import encode_command, parse_reply
from powerbox_alpaca.protocol.port_scanner import (
    PortInfo,
    DiscoveredDevice,
    list_available_ports,
    scan_for_powerbox,
    find_first_powerbox,
)

__all__ = [
    "LinkTransport",
    "SerialTransport",
    "read_line",
    "ConnectionManager",
    "BoardSignature",
    "DeviceDescription",
    "parse_signature",
    "parse_description",
    "encode_command",
    "parse_reply",
    "PortInfo",
    "DiscoveredDevice",
    "list_available_ports",
    "scan_for_powerbox",
    "find_first_powerbox",
]
