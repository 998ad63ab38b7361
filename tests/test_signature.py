"""
Tests for board signature and description parsing.
"""
import pytest

from powerbox_alpaca.protocol.signature import (
    count_pwm_ports,
    count_sensor_slots,
    parse_description,
    parse_signature,
    strip_sensor_markers,
)
from powerbox_alpaca.utils.exceptions import ProtocolError


class TestSignatureHelpers:

    def test_strip_markers(self):
        assert strip_sensor_markers("ppat") == ("ppa", 3)

    def test_strip_all_markers(self):
        assert strip_sensor_markers("ftt") == ("", 0)

    def test_strip_empty(self):
        assert strip_sensor_markers("") == ("", 0)

    def test_count_pwm_ports(self):
        assert count_pwm_ports("mmppspa") == 3

    @pytest.mark.parametrize("signature,slots", [
        ("ssp", 0),
        ("sspt", 1),
        ("ssptt", 2),
        ("sspf", 3),
        ("sspftt", 5),
    ])
    def test_count_sensor_slots(self, signature, slots):
        assert count_sensor_slots(signature) == slots


class TestParseSignature:

    def test_full_signature(self):
        signature = parse_signature("mmmmmmmmppppaaft")
        assert signature.ports == "mmmmmmmmppppaa"
        assert signature.port_count == 14
        assert signature.pwm_count == 4
        assert signature.probe_count == 1
        assert signature.has_combined_probe
        assert signature.sensor_slots == 4

    def test_feature_count(self):
        assert parse_signature("mmmmmmmmppppaa").feature_count == 38

    def test_empty_signature(self):
        signature = parse_signature("")
        assert signature.port_count == 0
        assert signature.feature_count == 2

    def test_marker_before_port(self):
        with pytest.raises(ProtocolError):
            parse_signature("stp")

    def test_unknown_character(self):
        with pytest.raises(ProtocolError):
            parse_signature("ssx")

    def test_two_combined_probes(self):
        with pytest.raises(ProtocolError):
            parse_signature("ssff")


class TestParseDescription:

    def test_description(self):
        description = parse_description(">D:BigPowerBox:001:ssppf#")
        assert description.name == "BigPowerBox"
        assert description.hw_revision == "001"
        assert description.signature.raw == "ssppf"

    def test_description_without_signature(self):
        assert parse_description(">D:Empty:001#").signature.port_count == 0

    def test_wrong_tag(self):
        with pytest.raises(ProtocolError):
            parse_description(">S:1:0#")

    def test_too_short(self):
        with pytest.raises(ProtocolError):
            parse_description(">D:OnlyName#")
