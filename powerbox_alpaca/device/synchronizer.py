"""
Status synchronizer.

Requests the status line and writes its positional fields back into the
feature table following the table's status field layout.
"""

import logging
import math

from powerbox_alpaca.device.features import DecodeRule, Feature, FeatureTable
from powerbox_alpaca.protocol.commands import STATUS_COMMAND, STATUS_TAG, expect_reply
from powerbox_alpaca.protocol.transport import DEFAULT_MAX_REPLY_BYTES, LinkTransport
from powerbox_alpaca.utils.exceptions import ProtocolError


logger = logging.getLogger(__name__)


def _parse_number(text: str, offset: int) -> float:
    try:
        number = float(text)
    except ValueError as e:
        raise ProtocolError(f"Status field {offset} is not numeric: {text!r}") from e
    if not math.isfinite(number):
        raise ProtocolError(f"Status field {offset} is not a finite number: {text!r}")
    return number


def _decode_port(feature: Feature, number: float) -> None:
    # Decided by the kind held now, so a PWM port in on/off mode reads as a switch
    if feature.kind.is_boolean_port:
        feature.state = number != 0
        feature.value = feature.max_value if feature.state else 0
    else:
        feature.value = int(number)
        feature.state = feature.value != 0


def apply_status(table: FeatureTable, line: str) -> None:
    """
    Decode a status reply into the table.

    Fields are decoded into a copy first; the table only changes when every
    field decoded cleanly. Fields beyond the layout are ignored.

    Args:
        table: Feature table built for the connected board.
        line: ``>S:<field>:<field>...#`` reply line.

    Raises:
        ProtocolError: If the tag is wrong, the reply was cut off before its
            closing ``#``, is shorter than the layout requires, or a field is
            not a finite number.
    """
    reply = expect_reply(line, STATUS_TAG, terminated=True)

    required = table.required_status_fields
    if len(reply.fields) < required:
        raise ProtocolError(
            f"Status reply has {len(reply.fields)} fields, {required} required: {line!r}"
        )

    staged = table.snapshot()
    for field in table.layout:
        number = _parse_number(reply.fields[field.offset], field.offset)
        feature = staged[field.index]

        if field.rule == DecodeRule.PORT:
            _decode_port(feature, number)
        else:
            feature.value = number
            feature.state = True

    table.replace_values(staged)

    if len(reply.fields) > required:
        logger.debug(f"Ignored {len(reply.fields) - required} extra status fields")


def refresh(transport: LinkTransport, table: FeatureTable,
            max_bytes: int = DEFAULT_MAX_REPLY_BYTES) -> None:
    """
    Request a status snapshot and apply it to the table.

    On any error the table keeps its last good values.

    Raises:
        TransportError: If the status request failed on the link.
        ProtocolError: If the reply did not decode.
    """
    line = transport.send_and_receive(STATUS_COMMAND, max_bytes)
    apply_status(table, line)
