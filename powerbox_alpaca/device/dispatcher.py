"""
Command dispatcher.

Turns a write against one feature into the device command for that
feature's kind, and updates the table once the device acknowledged it.
"""

import logging
import math

from powerbox_alpaca.device.features import Feature, FeatureKind, FeatureTable, PwmMode
from powerbox_alpaca.protocol import commands
from powerbox_alpaca.protocol.transport import DEFAULT_MAX_REPLY_BYTES, LinkTransport
from powerbox_alpaca.utils.exceptions import InvalidValueError, NotWritableError, ProtocolError


logger = logging.getLogger(__name__)


def _clamp(value: float, feature: Feature) -> int:
    return int(max(feature.min_value, min(feature.max_value, value)))


def _exchange(transport: LinkTransport, command: str, max_bytes: int) -> commands.Reply:
    """Send a command and require a framed acknowledgement."""
    return commands.parse_reply(transport.send_and_receive(command, max_bytes))


def write_feature(
    transport: LinkTransport,
    table: FeatureTable,
    index: int,
    requested_value: float,
    skip_redundant: bool = False,
    max_bytes: int = DEFAULT_MAX_REPLY_BYTES,
) -> None:
    """
    Write a value to one feature.

    PWM ports get the clamped duty (0 is sent as an explicit duty, not as the
    off command). Boolean ports are switched on for values above 0 and off
    otherwise. Mode selectors also reclassify their backing port.

    Args:
        transport: Open link to the appliance.
        table: Current feature table.
        index: Feature index.
        requested_value: Value to apply.
        skip_redundant: Skip boolean port writes the cached state already matches.
        max_bytes: Reply byte budget.

    Raises:
        IndexOutOfRangeError: If the index is outside the table.
        NotWritableError: If the feature is read-only. Nothing is sent.
        InvalidValueError: If the value is NaN or infinite. Nothing is sent.
        TransportError: If the command failed on the link. The table is unchanged.
        ProtocolError: If the acknowledgement was not a framed reply.
    """
    feature = table.get(index)

    if not feature.writable:
        raise NotWritableError(f"Feature {index} ({feature.label}) is read-only")

    if not math.isfinite(requested_value):
        raise InvalidValueError(f"Feature {index} ({feature.label}) cannot take {requested_value}")

    wire_port = feature.port - 1
    kind = feature.kind

    if kind == FeatureKind.PWM:
        duty = _clamp(requested_value, feature)
        _exchange(transport, commands.set_duty(wire_port, duty), max_bytes)
        feature.value = duty
        feature.state = duty != 0

    elif kind.is_boolean_port:
        turn_on = requested_value > 0
        if skip_redundant and feature.state == turn_on:
            logger.debug(f"Feature {index} already {'on' if turn_on else 'off'}, write skipped")
            return

        command = commands.port_on(wire_port) if turn_on else commands.port_off(wire_port)
        _exchange(transport, command, max_bytes)
        feature.state = turn_on
        feature.value = feature.max_value if turn_on else 0

    elif kind == FeatureKind.PWM_MODE:
        mode = _clamp(requested_value, feature)
        _exchange(transport, commands.set_pwm_mode(wire_port, mode), max_bytes)
        feature.value = mode
        feature.state = True
        table.apply_mode_transition(feature.port, mode)
        logger.info(f"Port {feature.port} set to PWM mode {PwmMode(mode).name}")

    elif kind == FeatureKind.PWM_TEMP_OFFSET:
        offset = _clamp(requested_value, feature)
        _exchange(transport, commands.set_temp_offset(wire_port, offset), max_bytes)
        feature.value = offset
        feature.state = True

    else:
        raise NotWritableError(f"Feature {index} of kind {kind.value} has no write command")

    logger.debug(f"Feature {index} ({feature.label}) = {feature.value}")


def query_pwm_settings(
    transport: LinkTransport,
    table: FeatureTable,
    max_bytes: int = DEFAULT_MAX_REPLY_BYTES,
) -> None:
    """
    Read every PWM port's mode and temperature offset from the device.

    The status line never carries these. Each mode read also applies the
    mode transition to the backing port.

    Raises:
        TransportError: If a query failed on the link.
        ProtocolError: If a reply carried no numeric value.
    """
    for index, feature in enumerate(table):
        if feature.kind == FeatureKind.PWM_MODE:
            command = commands.get_pwm_mode(feature.port - 1)
        elif feature.kind == FeatureKind.PWM_TEMP_OFFSET:
            command = commands.get_temp_offset(feature.port - 1)
        else:
            continue

        reply = _exchange(transport, command, max_bytes)
        value = _clamp(_reply_number(reply), feature)
        feature.value = value
        feature.state = True

        if feature.kind == FeatureKind.PWM_MODE:
            table.apply_mode_transition(feature.port, value)

        logger.debug(f"Feature {index} ({feature.label}) read back {value}")


def _reply_number(reply: commands.Reply) -> float:
    try:
        number = float(reply.last_field)
    except ValueError as e:
        raise ProtocolError(f"Reply value is not numeric: {reply.raw!r}") from e
    if not math.isfinite(number):
        raise ProtocolError(f"Reply value is not a finite number: {reply.raw!r}")
    return number
