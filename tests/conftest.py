"""
Shared fixtures for the power box tests.
"""
from typing import List, Optional, Union

import pytest

from powerbox_alpaca.config.models import PowerBoxConfig, SimulatorConfig
from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.protocol.connection import ConnectionManager
from powerbox_alpaca.protocol.logger import get_protocol_logger
from powerbox_alpaca.protocol.transport import DEFAULT_MAX_REPLY_BYTES, LinkTransport
from powerbox_alpaca.simulator.mock_powerbox import MockPowerBox
from powerbox_alpaca.utils.exceptions import NotConnectedError


class ScriptedTransport(LinkTransport):
    """
    Transport double that answers from a script.

    Each script entry is either a reply line or an exception instance to
    raise. Every command is recorded in ``sent``.
    """

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None, default_reply: Optional[str] = None):
        self.replies = list(replies or [])
        self.default_reply = default_reply
        self.sent: List[str] = []
        self.budgets: List[int] = []
        self.open_count = 0
        self.close_count = 0
        self._open = False

    @property
    def port_name(self) -> str:
        return "scripted"

    def open(self) -> None:
        self.open_count += 1
        self._open = True

    def close(self) -> None:
        self.close_count += 1
        self._open = False

    def is_open(self) -> bool:
        return self._open

    def send(self, command: str) -> None:
        if not self._open:
            raise NotConnectedError("closed")
        self.sent.append(command)

    def send_and_receive(self, command: str, max_bytes: int = DEFAULT_MAX_REPLY_BYTES) -> str:
        self.send(command)
        self.budgets.append(max_bytes)

        if self.replies:
            reply = self.replies.pop(0)
        elif self.default_reply is not None:
            reply = self.default_reply
        else:
            raise AssertionError(f"Unscripted command: {command}")

        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def make_transport():
    """Factory for open scripted transports."""
    def factory(replies=None, default_reply=None, opened=True) -> ScriptedTransport:
        transport = ScriptedTransport(replies, default_reply)
        if opened:
            transport.open()
            transport.open_count = 0
        return transport
    return factory


@pytest.fixture(autouse=True)
def clean_protocol_log():
    """Start every test with an empty, enabled protocol log."""
    protocol_logger = get_protocol_logger()
    protocol_logger.clear()
    protocol_logger.enabled = True
    yield
    protocol_logger.clear()


@pytest.fixture
def sim_config():
    """Simulator with two switches, two PWM ports, one always-on, a combined probe and one discrete probe."""
    return SimulatorConfig(
        enabled=True,
        signature="ssppaft",
        device_name="TestBox",
        hw_revision="002",
        input_volts=12.0,
        port_amps=1.0,
        ambient_temperature=10.0,
        ambient_humidity=50.0,
        probe_temperatures=[7.5],
    )


@pytest.fixture
def simulator(sim_config):
    return MockPowerBox(sim_config)


@pytest.fixture
def powerbox(simulator):
    """Connected power box backed by the simulator."""
    connection = ConnectionManager(simulator, retry_delay_seconds=0, sleep=lambda s: None)
    box = PowerBox(connection, PowerBoxConfig())
    box.connect()
    yield box
    box.disconnect()
