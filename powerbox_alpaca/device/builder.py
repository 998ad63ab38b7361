"""
Feature-table builder.

Turns a board signature into the ordered feature table and the status field
layout that goes with it.
"""

import logging
from typing import List, Optional, Union

from powerbox_alpaca.device.features import (
    DecodeRule,
    Feature,
    FeatureKind,
    FeatureTable,
    PWM_MAX_DUTY,
    StatusField,
    SWITCH_MAX,
)
from powerbox_alpaca.protocol.signature import (
    ALWAYS_ON_PORT,
    BoardSignature,
    MULTIPLEXED_PORT,
    PWM_PORT,
    SWITCH_PORT,
    TEMPERATURE_PROBE,
    parse_signature,
)


logger = logging.getLogger(__name__)

MAX_AMPS = 50.0
MAX_VOLTS = 50.0
MIN_TEMPERATURE = -100.0
MAX_TEMPERATURE = 200.0
MAX_HUMIDITY = 100.0
MAX_PWM_MODE = 3
MAX_TEMP_OFFSET = 10

# Sensors with no physical port behind them
NO_BACKING_PORT = 0

# Port character -> (kind, writable, max)
PORT_TYPE_TABLE = {
    SWITCH_PORT: (FeatureKind.SWITCH, True, SWITCH_MAX),
    MULTIPLEXED_PORT: (FeatureKind.MULTIPLEXED_SWITCH, True, SWITCH_MAX),
    PWM_PORT: (FeatureKind.PWM, True, PWM_MAX_DUTY),
    ALWAYS_ON_PORT: (FeatureKind.ALWAYS_ON, False, SWITCH_MAX),
}


def _port_feature(char: str, port: int, pwm_number: int, switch_number: int, always_on_number: int) -> Feature:
    kind, writable, max_value = PORT_TYPE_TABLE[char]

    if kind == FeatureKind.PWM:
        label = f"PWM Port {pwm_number}"
        description = f"PWM Port {pwm_number}"
    elif kind == FeatureKind.ALWAYS_ON:
        label = f"AO Port {port}"
        description = f"Always-On Port {always_on_number}"
    else:
        label = f"Port {port}"
        description = f"Switchable Port {switch_number}"

    return Feature(
        kind=kind,
        writable=writable,
        port=port,
        min_value=0,
        max_value=max_value,
        label=label,
        description=description,
    )


def _sensor(kind: FeatureKind, port: int, min_value: float, max_value: float,
            unit: str, label: str, description: str) -> Feature:
    return Feature(
        kind=kind,
        writable=False,
        port=port,
        min_value=min_value,
        max_value=max_value,
        unit=unit,
        label=label,
        description=description,
        state=True,
    )


def build_feature_table(signature: Union[str, BoardSignature]) -> FeatureTable:
    """
    Build the feature table for a board signature.

    Layout, in order: port controls, per-port current sensors, input current,
    input voltage, a mode/offset selector pair per PWM port, the combined
    probe's temperature/humidity/dewpoint, then one temperature per discrete
    probe.

    Args:
        signature: Raw signature string or an already parsed signature.

    Returns:
        The new feature table.

    Raises:
        ProtocolError: If a raw signature is malformed.

    Example:
        >>> len(build_feature_table("mmmmmmmmppppaa"))
        38
    """
    if isinstance(signature, str):
        signature = parse_signature(signature)

    features: List[Feature] = []
    layout: List[StatusField] = []
    offset = 0

    def add(feature: Feature, rule: Optional[DecodeRule] = None) -> None:
        nonlocal offset
        if rule is not None:
            layout.append(StatusField(offset=offset, index=len(features), rule=rule))
            offset += 1
        features.append(feature)

    pwm_number = switch_number = always_on_number = 1
    for position, char in enumerate(signature.ports):
        add(_port_feature(char, position + 1, pwm_number, switch_number, always_on_number), DecodeRule.PORT)
        if char == PWM_PORT:
            pwm_number += 1
        elif char == ALWAYS_ON_PORT:
            always_on_number += 1
        else:
            switch_number += 1

    for position in range(signature.port_count):
        add(_sensor(FeatureKind.OUTPUT_CURRENT, position + 1, 0, MAX_AMPS, "A",
                    f"Port {position + 1} Amps", "Output Current Sensor"), DecodeRule.READING)

    add(_sensor(FeatureKind.INPUT_CURRENT, NO_BACKING_PORT, 0, MAX_AMPS, "A",
                "Input Amps", "Input Current Sensor"), DecodeRule.READING)
    add(_sensor(FeatureKind.INPUT_VOLTAGE, NO_BACKING_PORT, 0, MAX_VOLTS, "V",
                "Input Volts", "Input Voltage Sensor"), DecodeRule.READING)

    # Mode and offset are queried per port, never carried by the status line
    pwm_number = 1
    for position, char in enumerate(signature.ports):
        if char != PWM_PORT:
            continue
        add(Feature(
            kind=FeatureKind.PWM_MODE,
            writable=True,
            port=position + 1,
            min_value=0,
            max_value=MAX_PWM_MODE,
            label=f"PWM Port {pwm_number} Mode",
            description=f"PWM Port {pwm_number} Mode (0: variable, 1: on/off, 2: dew heater, 3: temperature PID)",
        ))
        add(Feature(
            kind=FeatureKind.PWM_TEMP_OFFSET,
            writable=True,
            port=position + 1,
            min_value=0,
            max_value=MAX_TEMP_OFFSET,
            label=f"PWM Port {pwm_number} Offset",
            description=f"PWM Port {pwm_number} Temperature Offset",
        ))
        pwm_number += 1

    if signature.has_combined_probe:
        add(_sensor(FeatureKind.TEMPERATURE, NO_BACKING_PORT, MIN_TEMPERATURE, MAX_TEMPERATURE, "C",
                    "Env Temperature", "Environment Temperature Sensor"), DecodeRule.READING)
        add(_sensor(FeatureKind.HUMIDITY, NO_BACKING_PORT, 0, MAX_HUMIDITY, "%",
                    "Env Humidity", "Environment Humidity Sensor"), DecodeRule.READING)
        add(_sensor(FeatureKind.DEWPOINT, NO_BACKING_PORT, MIN_TEMPERATURE, MAX_TEMPERATURE, "C",
                    "Env Dewpoint", "Environment Dewpoint"), DecodeRule.READING)

    for probe in range(1, signature.raw.count(TEMPERATURE_PROBE) + 1):
        add(_sensor(FeatureKind.TEMPERATURE, probe, MIN_TEMPERATURE, MAX_TEMPERATURE, "C",
                    f"Temperature {probe}", f"Temperature Sensor for PWM port {probe}"), DecodeRule.READING)

    logger.debug(f"Built {len(features)} features from signature {signature.raw!r}")
    return FeatureTable(signature, features, layout)
