"""
Simulated power box.

Speaks the appliance's line protocol for any board signature so the driver
can run without hardware.
"""

import logging
import math
import random
import threading
import time
from dataclasses import dataclass, asdict
from typing import Callable, List, Optional

from powerbox_alpaca.config.models import SimulatorConfig
from powerbox_alpaca.device.features import PWM_MAX_DUTY, PwmMode
from powerbox_alpaca.protocol import commands
from powerbox_alpaca.protocol.logger import get_protocol_logger
from powerbox_alpaca.protocol.signature import ALWAYS_ON_PORT, PWM_PORT, parse_signature
from powerbox_alpaca.protocol.transport import DEFAULT_MAX_REPLY_BYTES, LinkTransport, read_line
from powerbox_alpaca.utils.exceptions import NotConnectedError, ProtocolError, SerialTimeoutError


logger = logging.getLogger(__name__)

ERROR_REPLY = ">E#"

# Magnus formula coefficients
MAGNUS_A = 17.62
MAGNUS_B = 243.12


def dewpoint(temperature: float, humidity: float) -> float:
    """Dewpoint in C from temperature (C) and relative humidity (%)."""
    humidity = max(humidity, 1.0)
    gamma = math.log(humidity / 100.0) + MAGNUS_A * temperature / (MAGNUS_B + temperature)
    return MAGNUS_B * gamma / (MAGNUS_A - gamma)


@dataclass
class SimulatedPort:
    """State the appliance keeps for one physical port."""

    port_type: str
    on: bool = False
    duty: int = 0
    mode: int = PwmMode.VARIABLE
    offset: int = 0
    name: str = ""

    @property
    def is_pwm(self) -> bool:
        return self.port_type == PWM_PORT

    def status_field(self) -> str:
        if self.port_type == ALWAYS_ON_PORT:
            return "1"
        if self.is_pwm:
            return str(self.duty)
        return "1" if self.on else "0"

    def load(self) -> float:
        """Fraction of full draw (0-1)."""
        if self.port_type == ALWAYS_ON_PORT:
            return 1.0
        if self.is_pwm:
            return self.duty / PWM_MAX_DUTY
        return 1.0 if self.on else 0.0


class MockPowerBox(LinkTransport):
    """
    LinkTransport backed by an in-process power box.

    Replies go through the same line reader as the serial transport, so
    byte budgets and truncation behave like the real link.
    """

    def __init__(self, config: SimulatorConfig):
        self.config = config
        self._lock = threading.Lock()
        self._open = False

        signature = parse_signature(config.signature)
        self._signature = signature
        self._ports = [SimulatedPort(port_type=c) for c in signature.ports]

        self.input_volts = config.input_volts
        self.port_amps = config.port_amps
        self.ambient_temperature = config.ambient_temperature
        self.ambient_humidity = config.ambient_humidity
        self.probe_temperatures = list(config.probe_temperatures)

        self._handlers = {
            "P": self._handle_ping,
            "D": self._handle_describe,
            "S": self._handle_status,
            "O": self._handle_on,
            "F": self._handle_off,
            "W": self._handle_duty,
            "C": self._handle_mode,
            "T": self._handle_offset,
            "G": self._handle_get_mode,
            "H": self._handle_get_offset,
            "N": self._handle_get_name,
            "M": self._handle_rename,
        }

        logger.info(f"Simulated power box initialized (signature {config.signature!r})")

    @property
    def port_name(self) -> str:
        return "simulator"

    @property
    def ports(self) -> List[SimulatedPort]:
        return self._ports

    def open(self) -> None:
        with self._lock:
            if self._open:
                logger.warning("Simulator already open")
                return
            if self.config.response_latency_ms > 0:
                time.sleep(self.config.response_latency_ms / 1000.0)
            self._open = True
            logger.info("Simulator connected")

    def close(self) -> None:
        with self._lock:
            if self._open:
                self._open = False
                logger.info("Simulator disconnected")

    def is_open(self) -> bool:
        return self._open

    def send(self, command: str) -> None:
        self._execute(command)

    def send_and_receive(self, command: str, max_bytes: int = DEFAULT_MAX_REPLY_BYTES) -> str:
        reply = self._execute(command)

        if self.config.inject_timeout:
            logger.warning("[SIMULATOR] Injected timeout for testing")
            get_protocol_logger().log_error("Simulated timeout", command)
            raise SerialTimeoutError("No reply from device")

        stream = iter((reply + "\n").encode("ascii"))
        line = read_line(_byte_reader(stream), max_bytes)
        get_protocol_logger().log_rx(line)
        return line

    def _execute(self, command: str) -> str:
        if not self._open:
            raise NotConnectedError("Simulator not connected")

        get_protocol_logger().log_tx(command)

        if self.config.response_latency_ms > 0:
            time.sleep(self.config.response_latency_ms / 1000.0)

        with self._lock:
            try:
                reply = commands.parse_reply(command)
            except ProtocolError:
                logger.warning(f"[SIMULATOR] Unframed command: {command!r}")
                return ERROR_REPLY

            handler = self._handlers.get(reply.tag)
            if handler is None:
                logger.warning(f"[SIMULATOR] Unknown command: {command!r}")
                return ERROR_REPLY

            try:
                response = handler(reply.fields)
            except (IndexError, ValueError) as e:
                logger.warning(f"[SIMULATOR] Rejected {command!r}: {e}")
                return ERROR_REPLY

        logger.debug(f"[SIMULATOR] {command} -> {response}")
        return response

    # Command handlers

    def _port(self, fields: List[str]) -> SimulatedPort:
        wire_port = int(fields[0])
        if not 0 <= wire_port < len(self._ports):
            raise IndexError(f"no port {wire_port}")
        return self._ports[wire_port]

    def _pwm_port(self, fields: List[str]) -> SimulatedPort:
        port = self._port(fields)
        if not port.is_pwm:
            raise ValueError(f"port {fields[0]} is not a PWM port")
        return port

    def _handle_ping(self, fields: List[str]) -> str:
        return commands.PING_REPLY

    def _handle_describe(self, fields: List[str]) -> str:
        return _frame("D", self.config.device_name, self.config.hw_revision, self._signature.raw)

    def _handle_status(self, fields: List[str]) -> str:
        values = [port.status_field() for port in self._ports]

        amps = [self._reading(self.port_amps * port.load()) for port in self._ports]
        values.extend(f"{a:.2f}" for a in amps)
        values.append(f"{sum(amps):.2f}")
        values.append(f"{self._reading(self.input_volts):.2f}")

        if self._signature.has_combined_probe:
            temperature = self._reading(self.ambient_temperature)
            humidity = min(100.0, max(0.0, self._reading(self.ambient_humidity)))
            values.append(f"{temperature:.1f}")
            values.append(f"{humidity:.1f}")
            values.append(f"{dewpoint(temperature, humidity):.1f}")

        for probe in range(self._signature.probe_count):
            if self.probe_temperatures:
                reading = self.probe_temperatures[probe % len(self.probe_temperatures)]
            else:
                reading = self.ambient_temperature
            values.append(f"{self._reading(reading):.1f}")

        return _frame("S", *values)

    def _handle_on(self, fields: List[str]) -> str:
        port = self._port(fields)
        if port.is_pwm:
            port.duty = PWM_MAX_DUTY
        port.on = True
        return _frame("O", fields[0])

    def _handle_off(self, fields: List[str]) -> str:
        port = self._port(fields)
        if port.is_pwm:
            port.duty = 0
        port.on = False
        return _frame("F", fields[0])

    def _handle_duty(self, fields: List[str]) -> str:
        port = self._pwm_port(fields)
        port.duty = max(0, min(PWM_MAX_DUTY, int(fields[1])))
        port.on = port.duty > 0
        return _frame("W", fields[0], port.duty)

    def _handle_mode(self, fields: List[str]) -> str:
        port = self._pwm_port(fields)
        port.mode = int(PwmMode(int(fields[1])))
        return _frame("C", fields[0], port.mode)

    def _handle_offset(self, fields: List[str]) -> str:
        port = self._pwm_port(fields)
        port.offset = max(0, min(10, int(fields[1])))
        return _frame("T", fields[0], port.offset)

    def _handle_get_mode(self, fields: List[str]) -> str:
        return _frame("G", fields[0], self._pwm_port(fields).mode)

    def _handle_get_offset(self, fields: List[str]) -> str:
        return _frame("H", fields[0], self._pwm_port(fields).offset)

    def _handle_get_name(self, fields: List[str]) -> str:
        return _frame("N", fields[0], self._port(fields).name)

    def _handle_rename(self, fields: List[str]) -> str:
        port = self._port(fields)
        port.name = fields[1]
        logger.info(f"[SIMULATOR] Port {fields[0]} renamed to {port.name!r}")
        return commands.RENAME_REPLY

    def _reading(self, value: float) -> float:
        if self.config.noise > 0:
            value += random.uniform(-self.config.noise, self.config.noise)
        return value

    def state(self) -> dict:
        """Snapshot of the simulated hardware for the control API."""
        with self._lock:
            return {
                "open": self._open,
                "device_name": self.config.device_name,
                "signature": self._signature.raw,
                "input_volts": self.input_volts,
                "port_amps": self.port_amps,
                "ambient_temperature": self.ambient_temperature,
                "ambient_humidity": self.ambient_humidity,
                "probe_temperatures": list(self.probe_temperatures),
                "ports": [asdict(port) for port in self._ports],
            }

    def set_readings(
        self,
        input_volts: Optional[float] = None,
        port_amps: Optional[float] = None,
        ambient_temperature: Optional[float] = None,
        ambient_humidity: Optional[float] = None,
        probe_temperatures: Optional[List[float]] = None,
    ) -> None:
        """Change the simulated sensor readings. None leaves a reading as is."""
        with self._lock:
            if input_volts is not None:
                self.input_volts = input_volts
            if port_amps is not None:
                self.port_amps = port_amps
            if ambient_temperature is not None:
                self.ambient_temperature = ambient_temperature
            if ambient_humidity is not None:
                self.ambient_humidity = ambient_humidity
            if probe_temperatures is not None:
                self.probe_temperatures = list(probe_temperatures)


def _frame(code: str, *fields) -> str:
    return commands.START_OF_COMMAND + commands.FIELD_SEPARATOR.join([code, *map(str, fields)]) + commands.END_OF_COMMAND


def _byte_reader(stream) -> Callable[[], bytes]:
    def read_byte() -> bytes:
        try:
            return bytes([next(stream)])
        except StopIteration:
            return b""
    return read_byte
