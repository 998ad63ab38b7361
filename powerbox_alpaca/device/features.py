"""
Feature model of a connected power box.

A feature is one addressable control or sensor. The feature table holds all
of them in the order the appliance reports status fields, together with the
status field layout derived from the same board signature.
"""

import copy
from dataclasses import dataclass, asdict
from enum import Enum, IntEnum
from typing import Iterator, List, Optional, Tuple

from powerbox_alpaca.protocol.signature import BoardSignature
from powerbox_alpaca.utils.exceptions import IndexOutOfRangeError


class FeatureKind(str, Enum):
    """What a feature is. The kind fixes writability and range."""

    SWITCH = "switch"
    MULTIPLEXED_SWITCH = "multiplexed_switch"
    PWM = "pwm"
    ALWAYS_ON = "always_on"
    OUTPUT_CURRENT = "output_current"
    INPUT_CURRENT = "input_current"
    INPUT_VOLTAGE = "input_voltage"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    DEWPOINT = "dewpoint"
    PWM_MODE = "pwm_mode"
    PWM_TEMP_OFFSET = "pwm_temp_offset"

    @property
    def is_port(self) -> bool:
        return self in PORT_KINDS

    @property
    def is_boolean_port(self) -> bool:
        return self in BOOLEAN_PORT_KINDS

    @property
    def is_sensor(self) -> bool:
        return self in SENSOR_KINDS


PORT_KINDS = frozenset({
    FeatureKind.SWITCH,
    FeatureKind.MULTIPLEXED_SWITCH,
    FeatureKind.PWM,
    FeatureKind.ALWAYS_ON,
})

BOOLEAN_PORT_KINDS = frozenset({
    FeatureKind.SWITCH,
    FeatureKind.MULTIPLEXED_SWITCH,
    FeatureKind.ALWAYS_ON,
})

SENSOR_KINDS = frozenset({
    FeatureKind.OUTPUT_CURRENT,
    FeatureKind.INPUT_CURRENT,
    FeatureKind.INPUT_VOLTAGE,
    FeatureKind.TEMPERATURE,
    FeatureKind.HUMIDITY,
    FeatureKind.DEWPOINT,
})


class PwmMode(IntEnum):
    """Operating modes of a PWM port."""

    VARIABLE = 0
    ON_OFF = 1
    DEW_HEATER = 2
    TEMPERATURE_PID = 3


PWM_MAX_DUTY = 255
SWITCH_MAX = 1


@dataclass
class Feature:
    """One addressable control or sensor."""

    kind: FeatureKind
    writable: bool
    port: int
    min_value: float
    max_value: float
    label: str
    description: str
    unit: Optional[str] = None
    value: float = 0.0
    state: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class DecodeRule(str, Enum):
    """How one status field is written into its feature."""

    PORT = "port"
    READING = "reading"


@dataclass(frozen=True)
class StatusField:
    """Maps one positional status field (after the tag) to a feature index."""

    offset: int
    index: int
    rule: DecodeRule


class FeatureTable:
    """
    Ordered feature table for one connected device.

    Index-addressed and insertion-stable. Carries the status field layout
    computed alongside it so decoding never redoes offset arithmetic.
    """

    LAYOUT_VERSION = 1

    def __init__(self, signature: BoardSignature, features: List[Feature], layout: List[StatusField]):
        self._signature = signature
        self._features = features
        self._layout = tuple(layout)

    @property
    def signature(self) -> BoardSignature:
        return self._signature

    @property
    def layout(self) -> Tuple[StatusField, ...]:
        return self._layout

    @property
    def required_status_fields(self) -> int:
        """Number of status fields (after the tag) the layout consumes."""
        if not self._layout:
            return 0
        return max(field.offset for field in self._layout) + 1

    def __len__(self) -> int:
        return len(self._features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self._features)

    def __getitem__(self, index: int) -> Feature:
        return self.get(index)

    def get(self, index: int) -> Feature:
        """
        Feature at ``index``.

        Raises:
            IndexOutOfRangeError: If the index is outside the table.
        """
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._features):
            raise IndexOutOfRangeError(
                f"Feature index {index} out of range (table has {len(self._features)} features)"
            )
        return self._features[index]

    def indices_of(self, kind: FeatureKind) -> List[int]:
        return [i for i, f in enumerate(self._features) if f.kind == kind]

    def port_feature(self, port: int) -> Feature:
        """Control feature of the 1-based physical ``port``."""
        if not 1 <= port <= self._signature.port_count:
            raise IndexOutOfRangeError(f"Port {port} out of range (box has {self._signature.port_count} ports)")
        return self._features[port - 1]

    def apply_mode_transition(self, port: int, mode: int) -> None:
        """
        Reclassify a PWM port after its mode changed.

        On/off mode turns the port into a plain switch with max 1; every
        other mode makes it a PWM port with max 255. The value is clamped
        into the new range, and a switch that was on comes back as full duty.
        """
        feature = self.port_feature(port)
        if mode == PwmMode.ON_OFF:
            feature.kind = FeatureKind.SWITCH
            feature.max_value = SWITCH_MAX
            if feature.value > SWITCH_MAX:
                feature.value = SWITCH_MAX
        else:
            if feature.kind == FeatureKind.SWITCH and feature.value == SWITCH_MAX:
                feature.value = PWM_MAX_DUTY
            feature.kind = FeatureKind.PWM
            feature.max_value = PWM_MAX_DUTY

    def relabel_port(self, port: int, name: str) -> None:
        """Label a port and every feature derived from it with the port's name."""
        self.port_feature(port).label = name
        for feature in self._features:
            if feature.port != port:
                continue
            if feature.kind == FeatureKind.OUTPUT_CURRENT:
                feature.label = f"{name} Current (A)"
            elif feature.kind == FeatureKind.PWM_MODE:
                feature.label = f"{name} Mode"
            elif feature.kind == FeatureKind.PWM_TEMP_OFFSET:
                feature.label = f"{name} Temperature Offset"

    def input_power(self) -> float:
        """Input power in watts from the input current and voltage sensors."""
        amps = self._features[self.indices_of(FeatureKind.INPUT_CURRENT)[0]].value
        volts = self._features[self.indices_of(FeatureKind.INPUT_VOLTAGE)[0]].value
        return amps * volts

    def snapshot(self) -> List[Feature]:
        """Deep copy of every feature."""
        return copy.deepcopy(self._features)

    def snapshot_of(self, index: int) -> Feature:
        return copy.copy(self.get(index))

    def replace_values(self, features: List[Feature]) -> None:
        """Swap in a complete set of features (same length, same order)."""
        if len(features) != len(self._features):
            raise ValueError("Replacement must keep the table size")
        self._features[:] = features
