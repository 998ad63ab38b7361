"""
Protocol message logger for debugging serial communication.

Captures TX/RX lines with timestamps for debugging purposes.
"""

import threading
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from powerbox_alpaca.protocol.commands import END_OF_COMMAND, FIELD_SEPARATOR, START_OF_COMMAND


@dataclass
class ProtocolMessage:
    """A single protocol message (TX, RX or ERR)."""
    timestamp: str
    direction: str
    text: str
    decoded: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


COMMAND_DESCRIPTIONS = {
    "P": "Ping",
    "D": "Get Description",
    "S": "Get Status",
    "O": "Port On",
    "F": "Port Off",
    "W": "Set PWM Duty",
    "C": "Set PWM Mode",
    "T": "Set Temperature Offset",
    "G": "Get PWM Mode",
    "H": "Get Temperature Offset",
    "N": "Get Port Name",
    "M": "Rename Port",
}


class ProtocolLogger:
    """
    Thread-safe logger for protocol messages.

    Maintains a circular buffer of messages with configurable max size.
    """

    DEFAULT_MAX_MESSAGES = 500

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES):
        self._messages: deque = deque(maxlen=max_messages)
        self._lock = threading.Lock()
        self._enabled = True
        self._tx_count = 0
        self._rx_count = 0
        self._error_count = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def log_tx(self, command: str) -> None:
        """
        Log a transmitted command line.

        Args:
            command: Framed command, e.g. ``>O:03#``.
        """
        if not self._enabled:
            return

        with self._lock:
            self._tx_count += 1
            self._messages.append(ProtocolMessage(
                timestamp=_now(),
                direction="TX",
                text=command,
                decoded=self._decode(command),
            ))

    def log_rx(self, line: str) -> None:
        """
        Log a received reply line.

        Args:
            line: Reply line with the terminator removed.
        """
        if not self._enabled:
            return

        with self._lock:
            self._rx_count += 1

            error = None
            if not line:
                error = "Empty reply"
                self._error_count += 1
            elif not line.startswith(START_OF_COMMAND):
                error = "Unframed reply"
                self._error_count += 1

            self._messages.append(ProtocolMessage(
                timestamp=_now(),
                direction="RX",
                text=line,
                decoded=self._decode(line) if error is None else None,
                error=error,
            ))

    def log_error(self, error_msg: str, text: str = "") -> None:
        """
        Log an error message.

        Args:
            error_msg: Error description.
            text: Optional partial data associated with the error.
        """
        if not self._enabled:
            return

        with self._lock:
            self._error_count += 1
            self._messages.append(ProtocolMessage(
                timestamp=_now(),
                direction="ERR",
                text=text,
                error=error_msg,
            ))

    def _decode(self, line: str) -> Dict[str, Any]:
        """Split a framed line into code and arguments."""
        body = line.strip().lstrip(START_OF_COMMAND).rstrip(END_OF_COMMAND)
        tokens = body.split(FIELD_SEPARATOR)
        code = tokens[0]
        return {
            "code": code,
            "args": tokens[1:],
            "description": COMMAND_DESCRIPTIONS.get(code[:1], "Reply" if len(code) > 1 else "Unknown"),
        }

    def get_messages(self, limit: int = 100) -> List[dict]:
        """
        Get recent messages.

        Args:
            limit: Maximum number of messages to return.

        Returns:
            List of message dictionaries, oldest first.
        """
        with self._lock:
            messages = list(self._messages)
            if len(messages) > limit:
                messages = messages[-limit:]
            return [m.to_dict() for m in messages]

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "total_messages": len(self._messages),
                "tx_count": self._tx_count,
                "rx_count": self._rx_count,
                "error_count": self._error_count,
                "max_messages": self._messages.maxlen,
                "enabled": self._enabled,
            }

    def clear(self) -> None:
        """Clear all logged messages."""
        with self._lock:
            self._messages.clear()
            self._tx_count = 0
            self._rx_count = 0
            self._error_count = 0


def _now() -> str:
    return datetime.now().isoformat(timespec='milliseconds')


# Global instance
_logger: Optional[ProtocolLogger] = None


def get_protocol_logger() -> ProtocolLogger:
    """Get or create the global protocol logger."""
    global _logger
    if _logger is None:
        _logger = ProtocolLogger()
    return _logger
