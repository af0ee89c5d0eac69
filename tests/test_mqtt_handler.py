import json

import pytest

import mqtt_handler
from device import Device
from devices import NumberDevice, SwitchDevice
from errors import DiscoveryPublishError, DuplicateDeviceError, DuplicateTopicError
from functions import DimmableLightFunction, FunctionBase, SwitchFunction


def _pump(calls=None):
    sink = calls if calls is not None else []
    device = Device("Pump Device", "pump")

    def on_command(state):
        sink.append(state)
        switch.update(state)

    switch = device.register_function(SwitchFunction("Pump", on_command))
    return device


# --- Naming / bootstrap ---

def test_full_id_is_namespaced_by_session(connector):
    device = _pump()
    connector.register_device(device)
    assert device.full_id == "abc_pump"
    assert device.functions[0].unique_id == "abc_pump_pump"


def test_switch_command_round_trip(connector, client, bring_online, payloads):
    calls = []
    device = _pump(calls)
    connector.register_device(device)
    bring_online()

    discovery = payloads("homeassistant/switch/abc_pump/pump/config")
    assert len(discovery) == 1
    assert discovery[0]["unique_id"] == "abc_pump_pump"
    assert discovery[0]["command_topic"] == "home/abc_pump/pump/set"
    assert discovery[0]["device"]["identifiers"] == ["abc_pump"]
    assert discovery[0]["availability_topic"] == "home/abc_pump/availability"
    assert "home/abc_pump/pump/set" in client.subscribed

    client.deliver("home/abc_pump/pump/set", '{"state": "ON"}')
    connector.process_messages(100)

    assert calls == [True]
    assert payloads("home/abc_pump/pump/state")[-1] == {"state": "ON"}


def test_bootstrap_order_is_subscribe_discovery_status(connector, client, bring_online):
    connector.register_device(_pump())
    bring_online()

    order = client.log
    sub = order.index(("subscribe", "home/abc_pump/pump/set"))
    disc = order.index(("publish", "homeassistant/switch/abc_pump/pump/config"))
    avail = order.index(("publish", "home/abc_pump/availability"))
    state = order.index(("publish", "home/abc_pump/pump/state"))
    assert sub < disc < avail < state


def test_status_marks_device_online_and_retained(connector, client, bring_online):
    connector.register_device(_pump())
    bring_online()

    avail = [(p, r) for (t, p, r) in client.published if t == "home/abc_pump/availability"]
    assert avail == [('{"availability": "online"}', True)]


def test_last_will_installed_before_connect(connector, client):
    connector.register_device(_pump())
    connector.connect()
    topic, payload, retain = client.will
    assert topic == "home/abc_pump/availability"
    assert json.loads(payload) == {"availability": "offline"}
    assert retain is True


def test_last_will_covers_first_device_only(connector, client, capsys):
    connector.register_device(_pump())
    connector.register_device(SwitchDevice("Fan", "fan", lambda s: None))
    connector.connect()
    assert client.will[0] == "home/abc_pump/availability"
    assert "WARNING" in capsys.readouterr().out


def test_credentials_are_passed_when_configured(client):
    connector = mqtt_handler.MQTTConnector("broker.local", 1883, "user", "secret", session_id="abc")
    connector.connect()
    assert client.credentials == ("user", "secret")


def test_discovery_is_idempotent(connector, client, bring_online, payloads):
    device = _pump()
    connector.register_device(device)
    bring_online()

    device.publish_discovery()
    first, second = payloads("homeassistant/switch/abc_pump/pump/config")
    assert first == second


def test_initial_status_skips_unset_values(connector, bring_online, payloads):
    number = NumberDevice("Level", "level", lambda v: None)
    connector.register_device(number)
    bring_online()

    assert payloads("home/abc_level/number/state") == []
    number.update(3.5)
    assert payloads("home/abc_level/number/state") == [{"value": 3.5}]


def test_dimmable_status_uses_brightness_scale(connector, bring_online, payloads):
    device = Device("Lamp", "lamp")
    light = device.register_function(DimmableLightFunction("Desk", lambda s, b: None))
    connector.register_device(device)
    bring_online()

    light.update(True, 0.5)
    assert payloads("home/abc_lamp/desk/state")[-1] == {"state": "ON", "brightness": 128}


# --- Registry ---

def test_duplicate_device_is_rejected(connector):
    connector.register_device(_pump())
    with pytest.raises(DuplicateDeviceError):
        connector.register_device(_pump())
    assert len(connector.devices) == 1


@pytest.mark.parametrize("first_id, second_id", [("pump", "pump"), ("Pump-1", "pump_1")])
def test_devices_resolving_to_same_topics_are_rejected(connector, first_id, second_id, capsys):
    first = SwitchDevice("Kitchen", first_id, lambda s: None)
    second = SwitchDevice("Garage", second_id, lambda s: None)
    connector.register_device(first)

    with pytest.raises(DuplicateDeviceError):
        connector.register_device(second)
    assert connector.devices == [first]
    assert second.connector is None
    assert "would share topics" in capsys.readouterr().out


def test_device_with_clashing_topics_is_not_registered(connector):
    class Clash(FunctionBase):
        component = "sensor"

        def subscribe_topics(self):
            return {"home/x/set"}

        def handle_message(self, topic, payload):
            pass

        def publish_status(self):
            return None

    device = Device("Dev", "dev")
    device.register_function(Clash("a"))
    device.register_function(Clash("b"))

    with pytest.raises(DuplicateTopicError):
        connector.register_device(device)
    assert connector.devices == []
    assert device.connector is None


def test_register_while_connected_reconnects(connector, client, bring_online, payloads):
    connector.register_device(_pump())
    bring_online()
    assert len(client.connect_calls) == 1

    connector.register_device(SwitchDevice("Fan", "fan", lambda s: None))
    assert client.disconnects == 1
    assert len(client.connect_calls) == 2

    connector.process_messages(10)
    assert connector.is_connected()
    assert payloads("homeassistant/switch/abc_fan/switch/config")
    assert len(payloads("homeassistant/switch/abc_pump/pump/config")) == 2


def test_unregister_device_unsubscribes(connector, client, bring_online):
    device = _pump()
    connector.register_device(device)
    bring_online()

    assert connector.unregister_device(device) is True
    assert client.unsubscribed == ["home/abc_pump/pump/set"]
    assert device.connector is None
    assert connector.unregister_device(device) is False


# --- Publishing ---

def test_publish_while_disconnected_returns_false(connector, capsys):
    assert connector.publish_message("home/x", {"a": 1}) is False
    assert "Not connected" in capsys.readouterr().out


def test_publish_failure_is_logged(connector, client, bring_online, capsys):
    bring_online()
    client.publish_rc = 4

    assert connector.publish_message("home/x", {"a": 1}) is False
    assert "ERROR" in capsys.readouterr().out


def test_discovery_failure_raises_with_topic(connector, client, bring_online):
    device = _pump()
    connector.register_device(device)
    bring_online()
    client.publish_rc = 4

    with pytest.raises(DiscoveryPublishError) as exc:
        device.publish_discovery()
    assert exc.value.topic == "homeassistant/switch/abc_pump/pump/config"


def test_failed_announce_is_logged_not_raised(connector, client, capsys):
    connector.register_device(_pump())
    client.publish_rc = 4
    connector.connect()
    connector.process_messages(10)
    assert "Failed to announce" in capsys.readouterr().out


# --- Inbound ---

def test_exit_on_first_event(connector, client, clock, bring_online):
    calls = []
    connector.register_device(_pump(calls))
    bring_online()
    client.deliver("home/abc_pump/pump/set", "ON")
    client.deliver("home/abc_pump/pump/set", "OFF")

    start = clock.now
    connector.process_messages(5000, exit_on_first_event=True)
    assert calls == [True]
    assert clock.now - start < 5

    connector.process_messages(5000)
    assert calls == [True, False]
    assert clock.now - start >= 5


def test_handler_errors_do_not_escape(connector, client, bring_online, capsys):
    device = Device("Pump Device", "pump")

    def boom(_state):
        raise RuntimeError("boom")

    device.register_function(SwitchFunction("Pump", boom))
    connector.register_device(device)
    bring_online()

    client.deliver("home/abc_pump/pump/set", "ON")
    connector.process_messages(100)
    assert "Error handling message: boom" in capsys.readouterr().out


def test_non_utf8_payload_is_dropped(connector, client, bring_online, capsys):
    calls = []
    connector.register_device(_pump(calls))
    bring_online()

    client.deliver("home/abc_pump/pump/set", b"\xff\xfe")
    connector.process_messages(100)
    assert calls == []
    assert "not valid UTF-8" in capsys.readouterr().out


# --- Reconnect backoff ---

def test_backoff_ladder_timing(connector, client, clock):
    client.connect_error = OSError("connection refused")

    for _ in range(125):
        connector.process_messages(1000)

    assert client.connect_calls == [1, 2, 7, 12, 17, 32, 62, 92, 122]
    assert connector.retry_index == len(mqtt_handler.BACKOFF_LADDER_MS) - 1


def test_refused_connack_keeps_backing_off(connector, client):
    client.connack_rc = 5
    assert connector.connect()
    connector.process_messages(10)
    assert not connector.is_connected()
    assert connector.retry_index == 1

    client.connack_rc = 0
    connector.process_messages(1000)
    assert len(client.connect_calls) == 2
    connector.process_messages(10)
    assert connector.is_connected()
    assert connector.retry_index == 0


def test_lost_connection_restarts_ladder(connector, client, bring_online):
    connector.register_device(_pump())
    bring_online()

    client.loop_rc = 7
    connector.process_messages(10)
    assert not connector.is_connected()
    assert connector.retry_index == 0

    client.loop_rc = 0
    connector.process_messages(1000)
    assert len(client.connect_calls) == 2


def test_disconnect_callback_marks_session_lost(connector, client, bring_online):
    bring_online()
    client.on_disconnect(client, None, {}, 7, None)
    assert not connector.is_connected()
    assert connector.retry_index == 0


# --- Shutdown ---

def test_stop_publishes_offline_and_stays_down(connector, client, bring_online, payloads):
    connector.register_device(_pump())
    bring_online()

    connector.stop()
    assert payloads("home/abc_pump/availability")[-1] == {"availability": "offline"}
    assert client.disconnects == 1

    for _ in range(5):
        connector.process_messages(1000)
    assert len(client.connect_calls) == 1
