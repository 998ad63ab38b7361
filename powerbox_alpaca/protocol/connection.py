"""
Connection manager for the power box link.

Opens the transport, confirms the appliance answers the ping handshake and
tracks how many callers share the open link.
"""

import logging
import threading
import time
from typing import Callable, Optional

from powerbox_alpaca.protocol.commands import PING_COMMAND, PING_REPLY
from powerbox_alpaca.protocol.transport import LinkTransport
from powerbox_alpaca.utils.exceptions import (
    DeviceNotDetectedError,
    NotConnectedError,
    TransportError,
)


logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1

# Reply budget for the ping: the full ">POK#" fits in max_bytes - 1
PING_REPLY_BUDGET = len(PING_REPLY) + 1


class ConnectionManager:
    """
    Owns the transport lifecycle and the ping handshake.

    Repeated ``open`` calls on a live link only increase the reference count;
    the transport is closed when the last holder calls ``close``.
    """

    DEFAULT_ATTEMPTS = 3
    DEFAULT_RETRY_DELAY = 5.0

    def __init__(
        self,
        transport: LinkTransport,
        attempts: int = DEFAULT_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            transport: Link to the appliance (closed).
            attempts: Total number of handshake attempts.
            retry_delay_seconds: Pause between failed attempts.
            sleep: Sleep function, replaceable in tests.
        """
        if attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {attempts}")

        self._transport = transport
        self._attempts = attempts
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep
        self._lock = threading.Lock()
        self._ref_count = 0
        self._protocol_version: Optional[int] = None

    @property
    def transport(self) -> LinkTransport:
        return self._transport

    @property
    def ref_count(self) -> int:
        return self._ref_count

    @property
    def protocol_version(self) -> Optional[int]:
        """Protocol version detected by the handshake, None while closed."""
        return self._protocol_version

    def is_connected(self) -> bool:
        return self._ref_count > 0 and self._transport.is_open()

    def open(self) -> None:
        """
        Open the link and run the ping handshake.

        Raises:
            PortNotFoundError: If the port does not exist.
            PortInUseError: If the port is held by another application.
            DeviceNotDetectedError: If no attempt got the expected ping reply.
        """
        with self._lock:
            if self._ref_count > 0:
                self._ref_count += 1
                logger.debug(f"Link already open, ref count {self._ref_count}")
                return

            self._transport.open()

            try:
                self._handshake()
            except DeviceNotDetectedError:
                self._transport.close()
                raise

            self._ref_count = 1
            self._protocol_version = PROTOCOL_VERSION
            logger.info(f"Power box detected on {self._transport.port_name}")

    def close(self) -> None:
        """
        Release one holder of the link.

        Raises:
            NotConnectedError: If the link is not open.
        """
        with self._lock:
            if self._ref_count == 0:
                raise NotConnectedError("Link is not open")

            self._ref_count -= 1
            if self._ref_count > 0:
                logger.debug(f"Link still held, ref count {self._ref_count}")
                return

            self._transport.close()
            self._protocol_version = None
            logger.info(f"Link to {self._transport.port_name} closed")

    def _handshake(self) -> None:
        for attempt in range(1, self._attempts + 1):
            try:
                reply = self._transport.send_and_receive(PING_COMMAND, PING_REPLY_BUDGET)
            except TransportError as e:
                logger.warning(f"Handshake attempt {attempt}/{self._attempts} failed: {e}")
            else:
                if reply.strip() == PING_REPLY:
                    logger.debug(f"Handshake succeeded on attempt {attempt}")
                    return
                logger.warning(
                    f"Handshake attempt {attempt}/{self._attempts}: unexpected reply {reply!r}"
                )

            if attempt < self._attempts:
                self._sleep(self._retry_delay)

        raise DeviceNotDetectedError(
            f"No power box answered on {self._transport.port_name} after {self._attempts} attempts"
        )
