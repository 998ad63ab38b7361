"""
Power box device facade.

Owns the connection, the feature table and the one lock that serializes
every table access and every exchange on the link.
"""

import logging
import threading
from typing import List, Optional

from powerbox_alpaca.config.models import PowerBoxConfig
from powerbox_alpaca.device import dispatcher, synchronizer
from powerbox_alpaca.device.builder import build_feature_table
from powerbox_alpaca.device.features import Feature, FeatureTable
from powerbox_alpaca.protocol import commands
from powerbox_alpaca.protocol.connection import ConnectionManager
from powerbox_alpaca.protocol.signature import DeviceDescription, parse_description
from powerbox_alpaca.protocol.transport import DEFAULT_MAX_REPLY_BYTES
from powerbox_alpaca.utils.exceptions import (
    InvalidValueError,
    NotConnectedError,
    PowerBoxException,
    ProtocolError,
)


logger = logging.getLogger(__name__)

# The appliance stores names in a 16-byte EEPROM slot
MAX_PORT_NAME_LENGTH = 15


def validate_port_name(name: str) -> str:
    """
    Check a port name can be stored by the appliance.

    Returns:
        The name with surrounding whitespace removed.

    Raises:
        InvalidValueError: If the name is empty, too long or holds a framing character.
    """
    name = name.strip()
    if not name:
        raise InvalidValueError("Port name must not be empty")
    if len(name) > MAX_PORT_NAME_LENGTH:
        raise InvalidValueError(f"Port name longer than {MAX_PORT_NAME_LENGTH} characters: {name!r}")
    if any(c in name for c in commands.RESERVED_CHARS):
        raise InvalidValueError(f"Port name must not contain any of {''.join(commands.RESERVED_CHARS)!r}")
    return name


class PowerBox:
    """
    Control-plane client for one power box.

    All public calls are safe from several threads. Calls made while the box
    is disconnected, or while it is being disconnected, fail at once with
    NotConnectedError.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        config: Optional[PowerBoxConfig] = None,
        max_reply_bytes: int = DEFAULT_MAX_REPLY_BYTES,
    ):
        """
        Args:
            connection: Connection manager around the link (closed).
            config: Device behaviour settings.
            max_reply_bytes: Byte budget for every reply line.
        """
        self._connection = connection
        self._config = config or PowerBoxConfig()
        self._max_reply_bytes = max_reply_bytes

        self._lock = threading.Lock()
        self._closing = False
        self._table: Optional[FeatureTable] = None
        self._description: Optional[DeviceDescription] = None

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def connected(self) -> bool:
        return not self._closing and self._connection.is_connected()

    @property
    def description(self) -> Optional[DeviceDescription]:
        """Identity and signature of the connected box."""
        return self._description

    # Lifecycle

    def connect(self) -> None:
        """
        Open the link, build the feature table and read initial state.

        Raises:
            DeviceNotDetectedError: If the handshake failed.
            TransportError: If the port could not be opened or a query failed.
            ProtocolError: If the description or a query reply was malformed.
        """
        with self._lock:
            if self._connection.is_connected():
                logger.warning("Already connected")
                return

            self._connection.open()
            self._closing = False

            try:
                self._load_description()
                synchronizer.refresh(self._transport, self._table, self._max_reply_bytes)
            except PowerBoxException:
                self._teardown()
                raise

        logger.info(
            f"Connected to {self._description.name} (hw {self._description.hw_revision}, "
            f"signature {self._description.signature.raw}, {len(self._table)} features)"
        )

    def disconnect(self) -> None:
        """Close the link and drop the feature table."""
        if not self._connection.is_connected():
            return

        self._closing = True
        with self._lock:
            self._teardown()

        logger.info("Power box disconnected")

    def _teardown(self) -> None:
        self._table = None
        self._description = None
        try:
            if self._connection.is_connected():
                self._connection.close()
        finally:
            self._closing = False

    def _require_connected(self) -> None:
        if self._closing or not self._connection.is_connected():
            raise NotConnectedError("Power box not connected")

    @property
    def _transport(self):
        return self._connection.transport

    # Description

    def _load_description(self) -> None:
        """
        Fetch the description and build a fully populated table.

        Selectors and port names are read into the new table before it
        replaces the old one, which stays in place on failure.
        """
        line = self._transport.send_and_receive(commands.DESCRIBE_COMMAND, self._max_reply_bytes)
        description = parse_description(line)
        table = build_feature_table(description.signature)

        dispatcher.query_pwm_settings(self._transport, table, self._max_reply_bytes)
        if self._config.query_port_names:
            self._query_port_names(table)

        self._description = description
        self._table = table
        logger.debug(f"Feature table built: {len(table)} features, {table.required_status_fields} status fields")

    def reload_description(self) -> None:
        """
        Fetch the description again and rebuild the feature table.

        Mode and offset selectors are read back and port names reapplied.
        """
        self._require_connected()
        with self._lock:
            self._require_connected()
            self._load_description()

    def _query_port_names(self, table: FeatureTable) -> None:
        for port in range(1, table.signature.port_count + 1):
            reply = commands.parse_reply(
                self._transport.send_and_receive(commands.get_port_name(port - 1), self._max_reply_bytes)
            )
            name = commands.FIELD_SEPARATOR.join(reply.fields[1:]).strip()
            if name:
                table.relabel_port(port, name)

    # Collaborator surface

    def describe(self) -> List[Feature]:
        """Snapshot of every feature."""
        self._require_connected()
        with self._lock:
            self._require_connected()
            return self._table.snapshot()

    def feature(self, index: int) -> Feature:
        """Copy of one feature."""
        self._require_connected()
        with self._lock:
            self._require_connected()
            return self._table.snapshot_of(index)

    def feature_count(self) -> int:
        self._require_connected()
        with self._lock:
            self._require_connected()
            return len(self._table)

    def refresh(self) -> None:
        """
        Pull one status snapshot from the box.

        Raises:
            NotConnectedError: If the box is not connected.
            TransportError: If the status request failed.
            ProtocolError: If the status line did not decode. The table keeps
                its last good values.
        """
        self._require_connected()
        with self._lock:
            self._require_connected()
            if self._table is None:
                self._load_description()
            synchronizer.refresh(self._transport, self._table, self._max_reply_bytes)

    def read(self, index: int) -> float:
        """Cached value of a feature."""
        self._require_connected()
        with self._lock:
            self._require_connected()
            return self._table.get(index).value

    def read_state(self, index: int) -> bool:
        """Cached on/off state of a feature."""
        self._require_connected()
        with self._lock:
            self._require_connected()
            return self._table.get(index).state

    def write(self, index: int, value: float) -> None:
        """
        Write a value to a feature.

        Raises:
            NotConnectedError: If the box is not connected.
            IndexOutOfRangeError: If the index is outside the table.
            NotWritableError: If the feature is read-only.
            TransportError: If the command failed.
        """
        self._require_connected()
        with self._lock:
            self._require_connected()
            dispatcher.write_feature(
                self._transport,
                self._table,
                index,
                value,
                skip_redundant=self._config.skip_redundant_writes,
                max_bytes=self._max_reply_bytes,
            )

    def input_power(self) -> float:
        """Input power in watts from the latest snapshot."""
        self._require_connected()
        with self._lock:
            self._require_connected()
            return self._table.input_power()

    def rename_port(self, index: int, name: str) -> None:
        """
        Rename the physical port behind a port-control feature.

        The appliance keeps names in EEPROM, so nothing is sent when the name
        is unchanged.

        Args:
            index: Index of a port-control feature.
            name: New name, 1-15 characters without ``:``, ``#`` or ``>``.

        Raises:
            InvalidValueError: If the feature is not a port or the name is invalid.
            TransportError: If the command failed.
            ProtocolError: If the appliance did not acknowledge the rename.
        """
        name = validate_port_name(name)

        self._require_connected()
        with self._lock:
            self._require_connected()
            feature = self._table.get(index)
            if not feature.kind.is_port:
                raise InvalidValueError(f"Feature {index} ({feature.label}) is not a port and cannot be renamed")

            if feature.label == name:
                logger.debug(f"Port {feature.port} already named {name!r}, rename skipped")
                return

            reply = self._transport.send_and_receive(
                commands.set_port_name(feature.port - 1, name), self._max_reply_bytes
            )
            if reply.strip() != commands.RENAME_REPLY:
                raise ProtocolError(f"Rename of port {feature.port} not acknowledged: {reply!r}")

            self._table.relabel_port(feature.port, name)
            logger.info(f"Port {feature.port} renamed to {name!r}")

