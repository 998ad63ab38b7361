"""
Line transport for the power box link.

Sends one command line and reads back one reply line. No retries and no
protocol interpretation live here; the connection manager owns the retry
policy and the device layer owns the grammar.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

import serial
from serial import SerialException

from powerbox_alpaca.protocol.commands import END_OF_COMMAND
from powerbox_alpaca.protocol.logger import get_protocol_logger
from powerbox_alpaca.utils.exceptions import (
    LinkResetError,
    NotConnectedError,
    PortInUseError,
    PortNotFoundError,
    SerialTimeoutError,
    TransportError,
)


logger = logging.getLogger(__name__)

LINE_FEED = 0x0A
CARRIAGE_RETURN = 0x0D
FRAME_END = ord(END_OF_COMMAND)

DEFAULT_MAX_REPLY_BYTES = 512


def read_line(read_byte: Callable[[], bytes], max_bytes: int) -> str:
    """
    Read one reply line, one byte at a time.

    The line ends at a line feed or right after the ``#`` frame terminator.
    Carriage returns are dropped. At most ``max_bytes - 1`` bytes are kept;
    reading stops there and the truncated line is returned.

    Args:
        read_byte: Callable returning one byte, or ``b""`` when the read
            budget elapsed without data.
        max_bytes: Reply buffer size, terminator included.

    Returns:
        The decoded line without its terminator.

    Raises:
        SerialTimeoutError: If nothing at all was received.
        LinkResetError: If the link went quiet in the middle of a line.
    """
    if max_bytes < 2:
        raise ValueError(f"max_bytes must be at least 2, got {max_bytes}")

    buffer = bytearray()
    limit = max_bytes - 1

    while len(buffer) < limit:
        chunk = read_byte()

        if not chunk:
            if buffer:
                raise LinkResetError(
                    f"Connection reset after {len(buffer)} bytes: {buffer.decode('ascii', errors='replace')!r}"
                )
            raise SerialTimeoutError("No reply from device")

        byte = chunk[0]
        if byte == CARRIAGE_RETURN:
            continue
        if byte == LINE_FEED:
            break

        buffer.append(byte)
        if byte == FRAME_END:
            break
    else:
        logger.warning(f"Reply truncated at {limit} bytes")

    return buffer.decode("ascii", errors="replace")


class LinkTransport(ABC):
    """Abstract base class for the request/reply link to the appliance."""

    @abstractmethod
    def open(self) -> None:
        """
        Open the link.

        Raises:
            PortNotFoundError: If the port does not exist.
            PortInUseError: If the port is held by another application.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the link. Safe to call when already closed."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def send(self, command: str) -> None:
        """
        Discard unread input and write one command line.

        Raises:
            NotConnectedError: If the link is not open.
            TransportError: On write failure.
        """
        pass

    @abstractmethod
    def send_and_receive(self, command: str, max_bytes: int = DEFAULT_MAX_REPLY_BYTES) -> str:
        """
        Send a command and block until one reply line is read.

        Args:
            command: Framed command line.
            max_bytes: Reply byte budget (the line keeps at most max_bytes - 1).

        Returns:
            Reply line without terminator.

        Raises:
            NotConnectedError: If the link is not open.
            SerialTimeoutError: If the device did not answer.
            LinkResetError: If the reply was cut off.
        """
        pass

    @property
    @abstractmethod
    def port_name(self) -> str:
        pass


class SerialTransport(LinkTransport):
    """
    Line transport over pyserial.

    ``port`` may be a device path (``/dev/ttyUSB0``, ``COM5``) or any
    pyserial URL (``socket://host:port``, ``rfc2217://...``).
    """

    DATA_BITS = serial.EIGHTBITS
    PARITY = serial.PARITY_NONE
    STOP_BITS = serial.STOPBITS_ONE

    def __init__(self, port: str, baud: int = 9600, timeout_seconds: float = 2.0):
        self._port_name = port
        self._baud = baud
        self._timeout = timeout_seconds
        self._port: Optional[serial.SerialBase] = None
        self._io_lock = threading.Lock()

    @property
    def port_name(self) -> str:
        return self._port_name

    def open(self) -> None:
        if self.is_open():
            logger.warning(f"{self._port_name} already open")
            return

        logger.info(f"Opening serial port {self._port_name}")

        try:
            self._port = serial.serial_for_url(
                self._port_name,
                baudrate=self._baud,
                bytesize=self.DATA_BITS,
                parity=self.PARITY,
                stopbits=self.STOP_BITS,
                timeout=self._timeout,
                write_timeout=self._timeout,
            )
        except SerialException as e:
            error_msg = str(e).lower()
            if "filenotfounderror" in error_msg or "no such file" in error_msg:
                raise PortNotFoundError(f"Failed to open {self._port_name}: Port not found") from e
            elif "access" in error_msg or "permission" in error_msg or "in use" in error_msg or "busy" in error_msg:
                raise PortInUseError(f"{self._port_name} is already in use by another application") from e
            else:
                raise PortNotFoundError(f"Failed to open {self._port_name}: {e}") from e

        self._port.reset_input_buffer()
        self._port.reset_output_buffer()

    def close(self) -> None:
        with self._io_lock:
            if self._port and self._port.is_open:
                self._port.close()
                logger.info(f"Serial port {self._port_name} closed")
            self._port = None

    def is_open(self) -> bool:
        return self._port is not None and self._port.is_open

    def send(self, command: str) -> None:
        with self._io_lock:
            self._write(command)

    def send_and_receive(self, command: str, max_bytes: int = DEFAULT_MAX_REPLY_BYTES) -> str:
        protocol_logger = get_protocol_logger()

        with self._io_lock:
            self._write(command)

            try:
                line = read_line(self._read_byte, max_bytes)
            except (SerialTimeoutError, LinkResetError) as e:
                protocol_logger.log_error(f"{e} (command {command})")
                raise

            protocol_logger.log_rx(line)
            logger.debug(f"RX: {line}")
            return line

    def _write(self, command: str) -> None:
        if not self.is_open():
            raise NotConnectedError("Serial port not open")

        protocol_logger = get_protocol_logger()
        data = command.encode("ascii")

        try:
            self._port.reset_input_buffer()
            self._port.write(data)
            self._port.flush()
        except SerialException as e:
            protocol_logger.log_error(f"Write failed: {e}", command)
            raise TransportError(f"Failed to write {command}: {e}") from e

        protocol_logger.log_tx(command)
        logger.debug(f"TX: {command}")

    def _read_byte(self) -> bytes:
        try:
            return self._port.read(1)
        except SerialException as e:
            raise LinkResetError(f"Read failed on {self._port_name}: {e}") from e
