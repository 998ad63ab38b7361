"""
Board signature parsing.

The appliance describes itself with a short string: one character per
physical port (``s`` switch, ``m`` multiplexed switch, ``p`` PWM, ``a``
always-on) followed by one marker per attached probe (``t`` discrete
temperature probe, ``f`` combined temperature/humidity/dewpoint probe).

    >D:BigPowerBox:001:mmmmmmmmppppaaft#
"""

from dataclasses import dataclass
from typing import Tuple

from powerbox_alpaca.protocol.commands import DESCRIPTION_TAG, expect_reply
from powerbox_alpaca.utils.exceptions import ProtocolError


SWITCH_PORT = "s"
MULTIPLEXED_PORT = "m"
PWM_PORT = "p"
ALWAYS_ON_PORT = "a"
PORT_TYPES = (SWITCH_PORT, MULTIPLEXED_PORT, PWM_PORT, ALWAYS_ON_PORT)

TEMPERATURE_PROBE = "t"
COMBINED_PROBE = "f"
SENSOR_MARKERS = (TEMPERATURE_PROBE, COMBINED_PROBE)

# Status fields contributed by each probe marker
COMBINED_PROBE_SLOTS = 3
TEMPERATURE_PROBE_SLOTS = 1


def strip_sensor_markers(signature: str) -> Tuple[str, int]:
    """
    Remove every probe marker from a raw signature.

    Args:
        signature: Raw board signature.

    Returns:
        Tuple of (port-type-only signature, port count).

    Example:
        >>> strip_sensor_markers("ppat")
        ('ppa', 3)
    """
    pure = "".join(c for c in signature if c not in SENSOR_MARKERS)
    return pure, len(pure)


def count_pwm_ports(pure_signature: str) -> int:
    """Number of PWM ports in a port-type-only signature."""
    return pure_signature.count(PWM_PORT)


def count_sensor_slots(signature: str) -> int:
    """
    Number of features the probe markers add to the table.

    A discrete probe adds one temperature reading, a combined probe adds
    temperature, humidity and dewpoint.
    """
    return (signature.count(TEMPERATURE_PROBE) * TEMPERATURE_PROBE_SLOTS
            + signature.count(COMBINED_PROBE) * COMBINED_PROBE_SLOTS)


@dataclass(frozen=True)
class BoardSignature:
    """Parsed board signature."""

    raw: str
    ports: str
    pwm_count: int
    probe_count: int
    has_combined_probe: bool
    sensor_slots: int

    @property
    def port_count(self) -> int:
        return len(self.ports)

    @property
    def feature_count(self) -> int:
        """Size of the feature table this signature produces."""
        return self.port_count * 2 + 2 + self.pwm_count * 2 + self.sensor_slots


def parse_signature(signature: str) -> BoardSignature:
    """
    Parse and validate a raw board signature.

    Raises:
        ProtocolError: If the signature contains unknown characters or a
            port type after a probe marker, or more than one combined probe.
    """
    seen_marker = False
    for position, c in enumerate(signature):
        if c in SENSOR_MARKERS:
            seen_marker = True
        elif c in PORT_TYPES:
            if seen_marker:
                raise ProtocolError(
                    f"Port type {c!r} after probe marker at position {position} in {signature!r}"
                )
        else:
            raise ProtocolError(f"Unknown signature character {c!r} in {signature!r}")

    if signature.count(COMBINED_PROBE) > 1:
        raise ProtocolError(f"More than one combined probe in {signature!r}")

    pure, _ = strip_sensor_markers(signature)

    return BoardSignature(
        raw=signature,
        ports=pure,
        pwm_count=count_pwm_ports(pure),
        probe_count=signature.count(TEMPERATURE_PROBE),
        has_combined_probe=COMBINED_PROBE in signature,
        sensor_slots=count_sensor_slots(signature),
    )


@dataclass(frozen=True)
class DeviceDescription:
    """Identity and layout reported by the description command."""

    name: str
    hw_revision: str
    signature: BoardSignature


def parse_description(line: str) -> DeviceDescription:
    """
    Parse a ``>D:<name>:<hwrev>:<signature>#`` reply.

    A reply with no signature field describes a box with no ports.

    Raises:
        ProtocolError: If the reply is not a description reply.
    """
    reply = expect_reply(line, DESCRIPTION_TAG)
    if len(reply.fields) < 2:
        raise ProtocolError(f"Description reply too short: {line!r}")

    name = reply.fields[0]
    hw_revision = reply.fields[1]
    raw_signature = reply.fields[2] if len(reply.fields) > 2 else ""

    return DeviceDescription(
        name=name,
        hw_revision=hw_revision,
        signature=parse_signature(raw_signature),
    )
