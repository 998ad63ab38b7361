"""
ASCOM Alpaca UDP discovery.

Listens on UDP port 32227 and answers "alpacadiscovery1" packets with the
HTTP port of the Alpaca API.
"""

import json
import logging
import socket
import threading
from typing import Optional


logger = logging.getLogger(__name__)

DISCOVERY_PORT = 32227
DISCOVERY_MESSAGE = b"alpacadiscovery1"


def discovery_response(alpaca_port: int) -> bytes:
    """Payload sent back to a discovering client."""
    return json.dumps({"AlpacaPort": alpaca_port}).encode("utf-8")


def is_discovery_request(data: bytes) -> bool:
    # Clients may pad the datagram, only the prefix is significant
    return data.startswith(DISCOVERY_MESSAGE)


class DiscoveryServer:
    """UDP discovery responder running in a background thread."""

    def __init__(self, alpaca_port: int, bind_address: str = "0.0.0.0", port: int = DISCOVERY_PORT):
        """
        Args:
            alpaca_port: HTTP port where the Alpaca API is served.
            bind_address: Interface to listen on.
            port: UDP port to listen on.
        """
        self.alpaca_port = alpaca_port
        self._bind_address = bind_address
        self._port = port
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Bind the socket and start answering.

        Raises:
            OSError: If the UDP port cannot be bound.
        """
        if self.running:
            logger.warning("Discovery server already running")
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._bind_address, self._port))
        except OSError:
            sock.close()
            raise
        sock.settimeout(1.0)

        self._socket = sock
        self._stop.clear()
        self._thread = threading.Thread(target=self._listen, name="alpaca-discovery", daemon=True)
        self._thread.start()

        logger.info(f"Discovery server started on UDP port {self._port}")

    def stop(self) -> None:
        if not self._thread:
            return

        self._stop.set()
        self._thread.join(timeout=3.0)
        self._thread = None

        if self._socket:
            self._socket.close()
            self._socket = None

        logger.info("Discovery server stopped")

    def _listen(self) -> None:
        while not self._stop.is_set():
            try:
                data, addr = self._socket.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop.is_set():
                    logger.error(f"Discovery socket error: {e}")
                break

            if is_discovery_request(data):
                self._respond(addr)

    def _respond(self, addr: tuple) -> None:
        try:
            self._socket.sendto(discovery_response(self.alpaca_port), addr)
            logger.info(f"Discovery response sent to {addr[0]}:{addr[1]} (AlpacaPort={self.alpaca_port})")
        except OSError as e:
            logger.error(f"Failed to send discovery response: {e}")
