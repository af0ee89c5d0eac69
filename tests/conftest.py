import json

import pytest

import config
import mqtt_handler


class FakeClock:
    """Stands in for the time module inside mqtt_handler."""

    def __init__(self):
        self.now = 0.0
        self.slept = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


class DummyInfo:
    def __init__(self, rc=0):
        self.rc = rc


class DummyMessage:
    def __init__(self, topic, payload):
        self.topic = topic
        self.payload = payload.encode("utf-8") if isinstance(payload, str) else payload


class DummyClient:
    """Records everything the connector asks of paho.

    loop() delivers a pending CONNACK first, then one queued message per call,
    and otherwise just lets the fake clock run out the timeout.
    """

    def __init__(self, clock):
        self.clock = clock
        self.log = []
        self.published = []
        self.subscribed = []
        self.unsubscribed = []
        self.will = None
        self.credentials = None
        self.connect_calls = []
        self.disconnects = 0

        self.connect_error = None
        self.connack_rc = 0
        self.publish_rc = 0
        self.subscribe_rc = 0
        self.loop_rc = 0

        self.inbox = []
        self._pending_connack = False

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def will_set(self, topic, payload=None, qos=0, retain=False):
        self.will = (topic, payload, retain)

    def will_clear(self):
        self.will = None

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def connect(self, host, port=1883, keepalive=60):
        self.connect_calls.append(self.clock.now)
        if self.connect_error is not None:
            raise self.connect_error
        self._pending_connack = True

    def disconnect(self):
        self.disconnects += 1
        self._pending_connack = False

    def subscribe(self, topic, qos=0):
        self.log.append(("subscribe", topic))
        self.subscribed.append(topic)
        return (self.subscribe_rc, 1)

    def unsubscribe(self, topic):
        self.unsubscribed.append(topic)
        return (0, 1)

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.log.append(("publish", topic))
        self.published.append((topic, payload, retain))
        return DummyInfo(self.publish_rc)

    def deliver(self, topic, payload):
        self.inbox.append(DummyMessage(topic, payload))

    def loop(self, timeout=1.0):
        if self.loop_rc:
            return self.loop_rc
        if self._pending_connack:
            self._pending_connack = False
            self.on_connect(self, None, {}, self.connack_rc, None)
        elif self.inbox:
            self.on_message(self, None, self.inbox.pop(0))
        else:
            self.clock.now += timeout
            return 0
        self.clock.now += min(timeout, 0.01)
        return 0


@pytest.fixture(autouse=True)
def quiet_config(monkeypatch):
    monkeypatch.setattr(config, "DEBUG", False)


@pytest.fixture
def clock(monkeypatch):
    c = FakeClock()
    monkeypatch.setattr(mqtt_handler, "time", c)
    return c


@pytest.fixture
def client(monkeypatch, clock):
    c = DummyClient(clock)
    monkeypatch.setattr(mqtt_handler.mqtt, "Client", lambda *a, **k: c)
    return c


@pytest.fixture
def connector(client):
    return mqtt_handler.MQTTConnector("broker.local", 1883, None, None, session_id="abc")


@pytest.fixture
def bring_online(connector):
    def _go():
        assert connector.connect()
        connector.process_messages(10)
        assert connector.is_connected()
    return _go


@pytest.fixture
def payloads(client):
    """All JSON payloads published to a topic, oldest first."""
    def _get(topic):
        return [json.loads(p) for (t, p, _r) in client.published if t == topic]
    return _get
