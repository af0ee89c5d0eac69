import pytest

from device import Device
from errors import DuplicateCapabilityError, DuplicateTopicError
from functions import FunctionBase, OnOffLightFunction, SwitchFunction


class FixedTopicFunction(FunctionBase):
    """Claims topics regardless of its name, to provoke clashes."""

    component = "sensor"

    def subscribe_topics(self):
        return {"home/dev/shared/set"}

    def discovery_topic(self):
        return "homeassistant/sensor/dev/shared/config"

    def handle_message(self, topic, payload):
        pass

    def publish_status(self):
        return None


def test_duplicate_function_names_are_rejected():
    device = Device("Dev", "dev")
    device.register_function(SwitchFunction("Pump", lambda s: None))
    with pytest.raises(DuplicateCapabilityError):
        device.register_function(OnOffLightFunction("pump", lambda s: None))
    assert len(device.functions) == 1


def test_duplicate_subscribe_topics_are_rejected():
    device = Device("Dev", "dev")
    device.register_function(FixedTopicFunction("a"))
    device.register_function(FixedTopicFunction("b"))
    with pytest.raises(DuplicateTopicError):
        device.subscribe_topics()


def test_duplicate_discovery_topics_fail_before_publishing(mocker):
    device = Device("Dev", "dev")
    device.register_function(FixedTopicFunction("a"))
    device.register_function(FixedTopicFunction("b"))
    publish = mocker.patch.object(device, "publish_message")
    with pytest.raises(DuplicateTopicError):
        device.publish_discovery()
    publish.assert_not_called()


def test_find_function_by_name_or_clean_name():
    device = Device("Dev", "dev")
    lamp = device.register_function(OnOffLightFunction("Desk Lamp", lambda s: None))
    assert device.find_function("Desk Lamp") is lamp
    assert device.find_function("desk_lamp") is lamp
    assert device.find_function("nope") is None


def test_full_id_without_connector_is_sanitized_unique_id():
    device = Device("Dev", "Pump-01")
    assert device.full_id == "pump_01"
    assert device.availability_topic == "home/pump_01/availability"


def test_routing_matches_whole_topic_segment():
    calls = []
    device = Device("Dev", "dev")
    device.register_function(OnOffLightFunction("lamp", lambda s: calls.append(("lamp", s))))
    device.register_function(OnOffLightFunction("lamp 2", lambda s: calls.append(("lamp_2", s))))

    assert device.route_message("home/dev/lamp_2/set", "ON") is True
    assert calls == [("lamp_2", True)]


def test_routing_ignores_other_devices(capsys):
    device = Device("Dev", "dev")
    device.register_function(OnOffLightFunction("lamp", lambda s: None))

    assert device.owns_topic("home/device/lamp/set") is False
    assert device.owns_topic("other/dev/lamp/set") is False
    assert device.route_message("home/dev2/lamp/set", "ON") is False
    assert device.route_message("home/dev/unknown/set", "ON") is False
    assert "No function" in capsys.readouterr().out


def test_publish_without_connector_fails_loudly(capsys):
    device = Device("Dev", "dev")
    assert device.publish_message("home/dev/x", {"a": 1}) is False
    assert "ERROR" in capsys.readouterr().out


def test_device_info_block():
    device = Device("Dev", "dev", manufacturer="Acme", model="M1", sw_version="2.0")
    assert device.device_info() == {
        "name": "Dev",
        "identifiers": ["dev"],
        "manufacturer": "Acme",
        "model": "M1",
        "sw_version": "2.0",
    }


def test_last_will_is_offline_on_availability_topic():
    device = Device("Dev", "dev")
    assert device.last_will() == ("home/dev/availability", {"availability": "offline"})
