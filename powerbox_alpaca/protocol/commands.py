"""
Command encoding and reply parsing for the power box wire protocol.

Every exchange is an ASCII line framed as ``>`` ... ``#`` with ``:`` between
fields. Port numbers on the wire are 0-based and zero-padded to two digits.
"""

from dataclasses import dataclass
from typing import List, Union

from powerbox_alpaca.utils.exceptions import ProtocolError


START_OF_COMMAND = ">"
END_OF_COMMAND = "#"
FIELD_SEPARATOR = ":"

PING_COMMAND = ">P#"
PING_REPLY = ">POK#"
DESCRIBE_COMMAND = ">D#"
STATUS_COMMAND = ">S#"
RENAME_REPLY = ">MOK#"

DESCRIPTION_TAG = "D"
STATUS_TAG = "S"

# Characters that would break the framing if sent inside a field
RESERVED_CHARS = (START_OF_COMMAND, END_OF_COMMAND, FIELD_SEPARATOR)


def encode_command(code: str, *args: Union[int, str]) -> str:
    """
    Encode a command line.

    Integer arguments in the first position are treated as wire port numbers
    and zero-padded to two digits; everything else is sent as-is.

    Args:
        code: One-letter command code (e.g. "O", "W", "C").
        *args: Command arguments.

    Returns:
        Framed command, e.g. ``>W:08:128#``.

    Raises:
        ValueError: If the code is not a single letter or an argument
            contains a framing character.

    Example:
        >>> encode_command("W", 8, 128)
        '>W:08:128#'
    """
    if len(code) != 1 or not code.isalpha():
        raise ValueError(f"Command code must be a single letter, got: {code!r}")

    parts = [code]
    for position, arg in enumerate(args):
        if isinstance(arg, bool):
            raise ValueError("Boolean arguments are not part of the wire grammar")
        if isinstance(arg, int):
            if arg < 0:
                raise ValueError(f"Negative argument not allowed: {arg}")
            parts.append(f"{arg:02d}" if position == 0 else str(arg))
        else:
            text = str(arg)
            if any(c in text for c in RESERVED_CHARS):
                raise ValueError(f"Argument contains a reserved character: {text!r}")
            parts.append(text)

    return START_OF_COMMAND + FIELD_SEPARATOR.join(parts) + END_OF_COMMAND


def port_on(wire_port: int) -> str:
    """Turn a boolean port on."""
    return encode_command("O", wire_port)


def port_off(wire_port: int) -> str:
    """Turn a boolean port off."""
    return encode_command("F", wire_port)


def set_duty(wire_port: int, duty: int) -> str:
    """Set the PWM duty cycle (0-255)."""
    return encode_command("W", wire_port, duty)


def set_pwm_mode(wire_port: int, mode: int) -> str:
    """Set the PWM operating mode (0-3)."""
    return encode_command("C", wire_port, mode)


def set_temp_offset(wire_port: int, offset: int) -> str:
    """Set the dew heater temperature offset (0-10)."""
    return encode_command("T", wire_port, offset)


def get_pwm_mode(wire_port: int) -> str:
    return encode_command("G", wire_port)


def get_temp_offset(wire_port: int) -> str:
    return encode_command("H", wire_port)


def get_port_name(wire_port: int) -> str:
    return encode_command("N", wire_port)


def set_port_name(wire_port: int, name: str) -> str:
    """Rename a port (stored in the appliance's EEPROM)."""
    return encode_command("M", wire_port, name)


@dataclass
class Reply:
    """A decoded reply line."""

    tag: str
    fields: List[str]
    raw: str

    @property
    def last_field(self) -> str:
        """Value of a ``...:<value>#`` shaped reply."""
        if not self.fields:
            raise ProtocolError(f"Reply has no value field: {self.raw!r}")
        return self.fields[-1]


def parse_reply(line: str) -> Reply:
    """
    Split a reply line into its tag and fields.

    Args:
        line: Reply as returned by the transport (terminator already removed).

    Returns:
        Reply with the tag stripped of ``>`` and the trailing ``#`` removed.

    Raises:
        ProtocolError: If the line does not start with ``>``.

    Example:
        >>> parse_reply(">G:08:1#").fields
        ['08', '1']
    """
    text = line.strip()
    if not text.startswith(START_OF_COMMAND):
        raise ProtocolError(f"Reply is not framed: {line!r}")

    body = text[1:]
    if body.endswith(END_OF_COMMAND):
        body = body[:-1]

    tokens = body.split(FIELD_SEPARATOR)
    return Reply(tag=tokens[0], fields=tokens[1:], raw=line)


def expect_reply(line: str, tag: str, terminated: bool = False) -> Reply:
    """
    Parse a reply and check its tag.

    Args:
        line: Reply line.
        tag: Expected reply tag.
        terminated: Require the closing ``#``. A reply cut off by the byte
            budget lacks it.

    Raises:
        ProtocolError: If the line is malformed, carries another tag, or is
            missing a required terminator.
    """
    if terminated and not line.strip().endswith(END_OF_COMMAND):
        raise ProtocolError(f"Reply truncated before {END_OF_COMMAND!r}: {line!r}")

    reply = parse_reply(line)
    if reply.tag != tag:
        raise ProtocolError(f"Expected {tag!r} reply, got {line!r}")
    return reply
