"""
Tests for the Alpaca Switch routes and the device API.
"""
import pytest
from fastapi.testclient import TestClient

from powerbox_alpaca.api.app import create_app
from powerbox_alpaca.api.discovery import discovery_response, is_discovery_request
from powerbox_alpaca.api.error_mapper import (
    ERROR_DRIVER_ERROR,
    ERROR_INVALID_VALUE,
    ERROR_NOT_CONNECTED,
    ERROR_NOT_IMPLEMENTED,
    map_exception_to_alpaca,
)
from powerbox_alpaca.config.models import AppConfig
from powerbox_alpaca.simulator.web_api import router as simulator_router
from powerbox_alpaca.utils.exceptions import (
    IndexOutOfRangeError,
    LinkResetError,
    NotConnectedError,
    NotWritableError,
    ProtocolError,
)


SWITCH = "/api/v1/switch/0"


@pytest.fixture
def client(powerbox, simulator):
    app = create_app(AppConfig(), powerbox)
    app.state.simulator = simulator
    app.include_router(simulator_router)
    return TestClient(app)


class TestErrorMapper:

    @pytest.mark.parametrize("error,number", [
        (NotConnectedError("x"), ERROR_NOT_CONNECTED),
        (NotWritableError("x"), ERROR_NOT_IMPLEMENTED),
        (IndexOutOfRangeError("x"), ERROR_INVALID_VALUE),
        (ProtocolError("x"), ERROR_DRIVER_ERROR),
        (LinkResetError("x"), ERROR_DRIVER_ERROR),
        (RuntimeError("x"), ERROR_DRIVER_ERROR),
    ])
    def test_numbers(self, error, number):
        assert map_exception_to_alpaca(error)[0] == number


class TestManagement:

    def test_api_versions(self, client):
        assert client.get("/management/apiversions").json() == {"Value": [1]}

    def test_configured_devices(self, client):
        device = client.get("/management/v1/configureddevices").json()["Value"][0]
        assert device["DeviceType"] == "Switch"
        assert device["DeviceNumber"] == 0

    def test_setup_page(self, client):
        response = client.get("/setup/v1/switch/0/setup")
        assert response.status_code == 200
        assert "TestBox" in response.text
        assert "Simulator" in response.text


class TestSwitchReads:

    def test_maxswitch(self, client):
        body = client.get(f"{SWITCH}/maxswitch", params={"ClientTransactionID": 42}).json()
        assert body["Value"] == 20
        assert body["ErrorNumber"] == 0
        assert body["ClientTransactionID"] == 42

    def test_getswitchvalue(self, client):
        assert client.get(f"{SWITCH}/getswitchvalue", params={"Id": 11}).json()["Value"] == 12.0

    def test_canwrite(self, client):
        assert client.get(f"{SWITCH}/canwrite", params={"Id": 0}).json()["Value"] is True
        assert client.get(f"{SWITCH}/canwrite", params={"Id": 11}).json()["Value"] is False

    def test_ranges(self, client):
        assert client.get(f"{SWITCH}/maxswitchvalue", params={"Id": 2}).json()["Value"] == 255
        assert client.get(f"{SWITCH}/minswitchvalue", params={"Id": 16}).json()["Value"] == -100

    def test_switchstep(self, client):
        assert client.get(f"{SWITCH}/switchstep", params={"Id": 11}).json()["Value"] == 0.01
        assert client.get(f"{SWITCH}/switchstep", params={"Id": 2}).json()["Value"] == 1.0

    def test_names(self, client):
        assert client.get(f"{SWITCH}/getswitchname", params={"Id": 2}).json()["Value"] == "PWM Port 1"
        assert client.get(f"{SWITCH}/getswitchdescription", params={"Id": 5}).json()["Value"] == "Output Current Sensor"

    def test_index_out_of_range(self, client):
        body = client.get(f"{SWITCH}/getswitchvalue", params={"Id": 99}).json()
        assert body["ErrorNumber"] == ERROR_INVALID_VALUE
        assert body["Value"] is None

    def test_common_members(self, client):
        assert client.get(f"{SWITCH}/interfaceversion").json()["Value"] == 2
        assert client.get(f"{SWITCH}/name").json()["Value"] == "TestBox"
        assert client.get(f"{SWITCH}/supportedactions").json()["Value"] == []


class TestSwitchWrites:

    def test_setswitch(self, client, simulator):
        body = client.put(f"{SWITCH}/setswitch", data={"Id": 0, "State": "true"}).json()

        assert body["ErrorNumber"] == 0
        assert simulator.ports[0].on is True
        assert client.get(f"{SWITCH}/getswitch", params={"Id": 0}).json()["Value"] is True

    def test_setswitch_pwm_goes_to_max(self, client, simulator):
        client.put(f"{SWITCH}/setswitch", data={"Id": 3, "State": "true"})
        assert simulator.ports[3].duty == 255

    def test_setswitchvalue(self, client, simulator):
        body = client.put(f"{SWITCH}/setswitchvalue", data={"Id": 2, "Value": 64}).json()

        assert body["ErrorNumber"] == 0
        assert simulator.ports[2].duty == 64

    def test_setswitchvalue_read_only(self, client):
        body = client.put(f"{SWITCH}/setswitchvalue", data={"Id": 11, "Value": 1}).json()
        assert body["ErrorNumber"] == ERROR_NOT_IMPLEMENTED

    def test_setswitchvalue_nan(self, client, simulator):
        body = client.put(f"{SWITCH}/setswitchvalue", data={"Id": 2, "Value": "nan"}).json()

        assert body["ErrorNumber"] == ERROR_INVALID_VALUE
        assert simulator.ports[2].duty == 0

    def test_setswitchname(self, client, simulator):
        body = client.put(f"{SWITCH}/setswitchname", data={"Id": 1, "Name": "Scope"}).json()

        assert body["ErrorNumber"] == 0
        assert simulator.ports[1].name == "Scope"

    def test_setswitchname_invalid(self, client):
        body = client.put(f"{SWITCH}/setswitchname", data={"Id": 1, "Name": "a:b"}).json()
        assert body["ErrorNumber"] == ERROR_INVALID_VALUE

    def test_disconnect_and_reconnect(self, client):
        client.put(f"{SWITCH}/connected", data={"Connected": "false"})
        assert client.get(f"{SWITCH}/connected").json()["Value"] is False
        assert client.get(f"{SWITCH}/maxswitch").json()["ErrorNumber"] == ERROR_NOT_CONNECTED

        client.put(f"{SWITCH}/connected", data={"Connected": "true"})
        assert client.get(f"{SWITCH}/maxswitch").json()["Value"] == 20


class TestNoDevice:

    def test_not_initialized(self):
        app = create_app(AppConfig())
        client = TestClient(app, raise_server_exceptions=False)

        body = client.get(f"{SWITCH}/maxswitch").json()

        assert body["ErrorNumber"] == ERROR_NOT_CONNECTED


class TestDeviceApi:

    def test_info(self, client):
        info = client.get("/api/v1/powerbox/info").json()
        assert info["connected"] is True
        assert info["device_name"] == "TestBox"
        assert info["signature"] == "ssppaft"
        assert info["feature_count"] == 20
        assert info["protocol_version"] == 1

    def test_features(self, client):
        features = client.get("/api/v1/powerbox/features").json()
        assert len(features) == 20
        assert features[4]["kind"] == "always_on"
        assert features[19]["unit"] == "C"

    def test_refresh_picks_up_readings(self, client, simulator):
        simulator.set_readings(input_volts=13.2)
        features = client.post("/api/v1/powerbox/refresh").json()
        assert features[11]["value"] == 13.2

    def test_refresh_failure(self, client, simulator):
        simulator.config.inject_timeout = True
        assert client.post("/api/v1/powerbox/refresh").status_code == 502

    def test_rename_feature(self, client):
        response = client.put("/api/v1/powerbox/features/0/name", json={"name": "Heater"})
        assert response.json()["label"] == "Heater"

    def test_rename_sensor_rejected(self, client):
        response = client.put("/api/v1/powerbox/features/11/name", json={"name": "Volts"})
        assert response.status_code == 400

    def test_reload(self, client):
        assert client.post("/api/v1/powerbox/reload").json()["feature_count"] == 20

    def test_protocol_log(self, client):
        client.post("/api/v1/powerbox/refresh")
        log = client.get("/api/v1/powerbox/protocol-log").json()

        assert any(m["text"] == ">S#" for m in log["messages"])

        client.delete("/api/v1/powerbox/protocol-log")
        assert client.get("/api/v1/powerbox/protocol-log").json()["messages"] == []

    def test_protocol_log_toggle(self, client):
        assert client.put("/api/v1/powerbox/protocol-log/enabled", params={"enabled": False}).json() == {"enabled": False}


class TestSimulatorApi:

    def test_status(self, client):
        state = client.get("/simulator/status").json()
        assert state["signature"] == "ssppaft"
        assert len(state["ports"]) == 5

    def test_readings(self, client, simulator):
        client.put("/simulator/readings", json={"ambient_temperature": 3.0})
        assert simulator.ambient_temperature == 3.0

    def test_empty_readings(self, client):
        assert client.put("/simulator/readings", json={}).status_code == 400


class TestDiscovery:

    def test_request_detection(self):
        assert is_discovery_request(b"alpacadiscovery1")
        assert not is_discovery_request(b"hello")

    def test_response_carries_port(self):
        assert b"5555" in discovery_response(5555)
