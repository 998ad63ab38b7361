"""
End-to-end tests of the PowerBox facade against the simulator.

Simulated board "ssppaft":
    0-1 switches, 2-3 PWM, 4 always-on, 5-9 port currents, 10 input amps,
    11 input volts, 12-15 mode/offset pairs, 16-18 env probe, 19 discrete probe.
"""
import threading

import pytest

from powerbox_alpaca.config.models import PowerBoxConfig
from powerbox_alpaca.device.features import FeatureKind, PwmMode
from powerbox_alpaca.device.powerbox import PowerBox, validate_port_name
from powerbox_alpaca.protocol.connection import ConnectionManager
from powerbox_alpaca.protocol.logger import get_protocol_logger
from powerbox_alpaca.simulator.mock_powerbox import MockPowerBox
from powerbox_alpaca.utils.exceptions import (
    DeviceNotDetectedError,
    IndexOutOfRangeError,
    InvalidValueError,
    NotConnectedError,
    NotWritableError,
    ProtocolError,
    SerialTimeoutError,
)


def connect_box(transport, **config) -> PowerBox:
    connection = ConnectionManager(transport, retry_delay_seconds=0, sleep=lambda s: None)
    box = PowerBox(connection, PowerBoxConfig(**config))
    box.connect()
    return box


def sent_codes():
    return [m["text"] for m in get_protocol_logger().get_messages(1000) if m["direction"] == "TX"]


class TestConnect:
    """Tests for connect and the initial state."""

    def test_description(self, powerbox):
        assert powerbox.connected
        assert powerbox.description.name == "TestBox"
        assert powerbox.description.hw_revision == "002"
        assert powerbox.feature_count() == 20

    def test_initial_readings(self, powerbox):
        assert powerbox.read(11) == 12.0
        assert powerbox.read(16) == 10.0
        assert powerbox.read(17) == 50.0
        assert powerbox.read(19) == 7.5
        assert powerbox.read_state(4) is True
        assert powerbox.read(9) == 1.0
        assert powerbox.input_power() == pytest.approx(12.0)

    def test_connect_sequence(self, simulator):
        box = connect_box(simulator)
        try:
            codes = sent_codes()
            assert codes[:2] == [">P#", ">D#"]
            assert codes[2:6] == [">G:02#", ">H:02#", ">G:03#", ">H:03#"]
            assert codes[6:11] == [f">N:0{i}#" for i in range(5)]
            assert codes[11] == ">S#"
        finally:
            box.disconnect()

    def test_port_names_skipped_when_disabled(self, simulator):
        box = connect_box(simulator, query_port_names=False)
        try:
            assert not any(code.startswith(">N") for code in sent_codes())
        finally:
            box.disconnect()

    def test_stored_names_relabel_features(self, simulator):
        simulator.ports[0].name = "Mount"
        simulator.ports[2].name = "Dew Main"

        box = connect_box(simulator)
        try:
            assert box.feature(0).label == "Mount"
            assert box.feature(5).label == "Mount Current (A)"
            assert box.feature(2).label == "Dew Main"
            assert box.feature(12).label == "Dew Main Mode"
            assert box.feature(13).label == "Dew Main Temperature Offset"
        finally:
            box.disconnect()

    def test_port_already_in_on_off_mode(self, simulator):
        simulator.ports[3].mode = PwmMode.ON_OFF
        simulator.ports[3].offset = 6

        box = connect_box(simulator)
        try:
            assert box.feature(3).kind == FeatureKind.SWITCH
            assert box.feature(3).max_value == 1
            assert box.read(14) == PwmMode.ON_OFF
            assert box.read(15) == 6
            assert box.feature(2).kind == FeatureKind.PWM
        finally:
            box.disconnect()

    def test_connect_twice_is_noop(self, powerbox):
        powerbox.connect()
        assert powerbox.connection.ref_count == 1

    def test_no_device(self, make_transport):
        transport = make_transport(default_reply="", opened=False)
        box = PowerBox(ConnectionManager(transport, sleep=lambda s: None))

        with pytest.raises(DeviceNotDetectedError):
            box.connect()

        assert not box.connected

    def test_bad_description_tears_down(self, make_transport):
        transport = make_transport([">POK#", ">S:1#"], opened=False)
        box = PowerBox(ConnectionManager(transport, sleep=lambda s: None))

        with pytest.raises(ProtocolError):
            box.connect()

        assert not box.connected
        assert box.description is None
        assert transport.close_count == 1
        with pytest.raises(NotConnectedError):
            box.describe()


class TestNotConnected:
    """Calls on a box that is not connected fail at once."""

    @pytest.mark.parametrize("call", [
        lambda box: box.describe(),
        lambda box: box.refresh(),
        lambda box: box.read(0),
        lambda box: box.write(0, 1),
        lambda box: box.feature_count(),
        lambda box: box.rename_port(0, "Name"),
        lambda box: box.reload_description(),
    ])
    def test_before_connect(self, simulator, call):
        box = PowerBox(ConnectionManager(simulator, sleep=lambda s: None))
        with pytest.raises(NotConnectedError):
            call(box)

    def test_after_disconnect(self, powerbox, simulator):
        powerbox.disconnect()

        assert not powerbox.connected
        assert not simulator.is_open()
        with pytest.raises(NotConnectedError):
            powerbox.read(0)

    def test_disconnect_twice(self, powerbox):
        powerbox.disconnect()
        powerbox.disconnect()


class TestReadWrite:
    """Writes reach the simulated hardware and come back on refresh."""

    def test_switch(self, powerbox, simulator):
        powerbox.write(0, 1)
        assert simulator.ports[0].on is True

        powerbox.refresh()
        assert powerbox.read_state(0) is True
        assert powerbox.read(5) == 1.0

    def test_pwm_duty(self, powerbox, simulator):
        powerbox.write(2, 128)
        assert simulator.ports[2].duty == 128

        powerbox.refresh()
        assert powerbox.read(2) == 128

    def test_mode_switch_round_trip(self, powerbox, simulator):
        powerbox.write(12, PwmMode.ON_OFF)
        assert simulator.ports[2].mode == PwmMode.ON_OFF
        assert powerbox.feature(2).kind == FeatureKind.SWITCH

        powerbox.write(2, 1)
        powerbox.refresh()
        assert simulator.ports[2].duty == 255
        assert powerbox.read(2) == 1
        assert powerbox.read_state(2) is True

        powerbox.write(12, PwmMode.DEW_HEATER)
        powerbox.refresh()
        assert powerbox.feature(2).kind == FeatureKind.PWM
        assert powerbox.read(2) == 255

    def test_temperature_offset(self, powerbox, simulator):
        powerbox.write(15, 3)
        assert simulator.ports[3].offset == 3
        assert powerbox.read(15) == 3

    def test_read_only(self, powerbox):
        with pytest.raises(NotWritableError):
            powerbox.write(11, 5)

    def test_out_of_range(self, powerbox):
        with pytest.raises(IndexOutOfRangeError):
            powerbox.read(20)

    def test_redundant_write_skipped(self, powerbox):
        get_protocol_logger().clear()
        powerbox.write(1, 0)
        assert sent_codes() == []

    def test_new_readings(self, powerbox, simulator):
        simulator.set_readings(input_volts=13.8, ambient_humidity=80.0, probe_temperatures=[-3.5])
        powerbox.refresh()

        assert powerbox.read(11) == 13.8
        assert powerbox.read(17) == 80.0
        assert powerbox.read(19) == -3.5

    def test_failed_refresh_keeps_values(self, powerbox, simulator):
        powerbox.write(0, 1)
        powerbox.refresh()
        before = powerbox.describe()

        simulator.config.inject_timeout = True
        with pytest.raises(SerialTimeoutError):
            powerbox.refresh()
        simulator.config.inject_timeout = False

        assert powerbox.describe() == before

    def test_describe_is_a_copy(self, powerbox):
        features = powerbox.describe()
        features[0].value = 99
        assert powerbox.read(0) == 0

    def test_concurrent_access(self, powerbox):
        errors = []

        def worker(index):
            try:
                for n in range(20):
                    powerbox.write(index, n % 2)
                    powerbox.refresh()
                    powerbox.read(index)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in (0, 1, 2, 3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []


class TestRenamePort:
    """Tests for rename_port."""

    def test_rename(self, powerbox, simulator):
        powerbox.rename_port(1, "Camera")

        assert simulator.ports[1].name == "Camera"
        assert powerbox.feature(1).label == "Camera"
        assert powerbox.feature(6).label == "Camera Current (A)"

    def test_unchanged_name_not_sent(self, powerbox):
        powerbox.rename_port(1, "Camera")
        get_protocol_logger().clear()

        powerbox.rename_port(1, "Camera")

        assert sent_codes() == []

    def test_not_a_port(self, powerbox):
        with pytest.raises(InvalidValueError):
            powerbox.rename_port(12, "Mode")

    def test_not_acknowledged(self, make_transport):
        transport = make_transport(
            [">POK#", ">D:Box:001:s#", ">N:00:#", ">S:0:0:0:12#", ">E#"], opened=False
        )
        box = connect_box(transport)

        with pytest.raises(ProtocolError):
            box.rename_port(0, "Lamp")
        assert box.feature(0).label == "Port 1"

    @pytest.mark.parametrize("name", ["", "   ", "a" * 16, "a:b", "a#b", ">ab"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidValueError):
            validate_port_name(name)

    def test_name_is_trimmed(self):
        assert validate_port_name("  Focuser ") == "Focuser"


class TestReloadDescription:

    def test_failed_selector_query_keeps_table(self, powerbox, monkeypatch):
        powerbox.write(12, PwmMode.ON_OFF)
        before = powerbox.describe()

        def fail(*args, **kwargs):
            raise SerialTimeoutError("no reply")

        monkeypatch.setattr("powerbox_alpaca.device.dispatcher.query_pwm_settings", fail)

        with pytest.raises(SerialTimeoutError):
            powerbox.reload_description()

        assert powerbox.describe() == before
        assert powerbox.feature(2).kind == FeatureKind.SWITCH

    def test_reload_rebuilds_table(self, powerbox, simulator):
        simulator.ports[4].name = "Hub"
        powerbox.reload_description()

        assert powerbox.feature_count() == 20
        assert powerbox.feature(4).label == "Hub"
