# mqtt_handler.py
"""
FILE: mqtt_handler.py
DESCRIPTION:
  Manages the connection to the MQTT Broker.
  - Owns the single paho client and the registry of devices.
  - On every (re)connect: subscribe -> discovery -> status, per device.
  - process_messages(): the only call that advances the network. While
    disconnected it drives a capped reconnect backoff instead, so no
    background thread is needed.
"""
import json
import time

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

import config
from errors import ConfigurationError, DuplicateDeviceError, PublishError
from utils import get_machine_id, sanitize

# Minimum wait (ms) before reconnect attempt N+1 after N failures. Capped at the last entry.
BACKOFF_LADDER_MS = [1000, 1000, 5000, 5000, 5000, 15000, 30000, 30000]


class MQTTConnector:
    def __init__(self, host=None, port=None, username=None, password=None, session_id=None, keepalive=None):
        self.host = host or config.MQTT_SETTINGS["host"]
        self.port = int(port or config.MQTT_SETTINGS["port"])
        self.username = username if username is not None else config.MQTT_SETTINGS["user"]
        self.password = password if password is not None else config.MQTT_SETTINGS["pass"]
        self.keepalive = int(keepalive or config.MQTT_KEEPALIVE)

        if session_id is None:
            self.session_id = get_machine_id()
        else:
            self.session_id = sanitize(session_id) if session_id else ""

        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=f"hass_mqtt_device_{self.session_id}" if self.session_id else "",
        )

        self._devices = []

        # Connection state machine
        self._connected = False        # socket session open (CONNACK may be pending)
        self._handshake_ok = False     # broker accepted the session
        self._awaiting_connack = False
        self._stopped = False
        self.retry_index = 0
        self.elapsed_ms = 0

        # Inbound messages dispatched so far (used by exit_on_first_event)
        self._events = 0

    # --- Registry ---

    @property
    def devices(self):
        return list(self._devices)

    def register_device(self, device):
        for existing in self._devices:
            if existing.identity == device.identity:
                print(f"[MQTT] ERROR: Device '{device.name}' ({device.unique_id}) is already registered.")
                raise DuplicateDeviceError(
                    f"Device '{device.clean_name}' with id '{device.unique_id}' is already registered"
                )
            if existing.full_id == device.full_id_for(self.session_id):
                print(f"[MQTT] ERROR: Device '{device.name}' would share topics home/{existing.full_id}/ with '{existing.name}'.")
                raise DuplicateDeviceError(
                    f"Device '{device.name}' resolves to the same id '{existing.full_id}' as '{existing.name}'"
                )

        device.attach(self)
        try:
            # Surface duplicate command topics now rather than at connect time.
            device.subscribe_topics()
        except ConfigurationError:
            device.detach()
            raise

        self._devices.append(device)
        print(f"[MQTT] Registered device: {device.name} ({device.full_id})")

        if self._connected:
            # Subscriptions and discovery are only bootstrapped on connect.
            print(f"[MQTT] Reconnecting to announce '{device.name}'...")
            self.disconnect()
            self.connect()

    def unregister_device(self, device):
        """Remove a device. Retained discovery/state on the broker is left as is."""
        if device not in self._devices:
            return False
        if self._connected:
            for topic in device.subscribe_topics():
                self.client.unsubscribe(topic)
        self._devices.remove(device)
        device.detach()
        print(f"[MQTT] Unregistered device: {device.name}")
        return True

    # --- Connection ---

    def _install_last_will(self):
        # MQTT carries exactly one will per session; it covers the first device.
        if not self._devices:
            self.client.will_clear()
            return
        topic, payload = self._devices[0].last_will()
        self.client.will_set(topic, json.dumps(payload), retain=True)
        if len(self._devices) > 1:
            print(
                f"[MQTT] WARNING: Last will only covers '{self._devices[0].name}'; "
                "other devices go offline on clean shutdown only."
            )

    def connect(self):
        self._install_last_will()
        if self.username:
            self.client.username_pw_set(self.username, self.password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        print(f"[MQTT] Connecting to MQTT Broker at {self.host}:{self.port}...")
        try:
            self.client.connect(self.host, self.port, self.keepalive)
        except (OSError, ValueError) as e:
            print(f"[MQTT] ERROR: Connect failed: {e}")
            self._connected = False
            self._awaiting_connack = False
            self.elapsed_ms = 0
            return False

        self._connected = True
        self._awaiting_connack = True
        self._stopped = False
        return True

    def disconnect(self):
        if self._connected:
            print(f"[MQTT] Disconnecting from {self.host}...")
            self.client.disconnect()
        self._reset_to_disconnected()

    def stop(self):
        """Mark every device offline, close the session and stop reconnecting."""
        if self._connected:
            for device in self._devices:
                device.publish_offline()
        self.disconnect()
        self._stopped = True

    def is_connected(self):
        return self._connected and self._handshake_ok

    def _reset_to_disconnected(self):
        self._connected = False
        self._handshake_ok = False
        self._awaiting_connack = False
        self.retry_index = 0
        self.elapsed_ms = 0

    def _failed_attempt(self):
        self._connected = False
        self._handshake_ok = False
        self._awaiting_connack = False
        self.retry_index = min(self.retry_index + 1, len(BACKOFF_LADDER_MS) - 1)
        self.elapsed_ms = 0

    def _connection_lost(self):
        if self._handshake_ok:
            self._reset_to_disconnected()
        elif self._awaiting_connack:
            self._failed_attempt()
        else:
            self._connected = False

    # --- Callbacks ---

    def _on_connect(self, c, u, f, rc, p=None):
        self._awaiting_connack = False
        if rc != 0:
            print(f"[MQTT] Connection Failed! Code: {rc}")
            self._failed_attempt()
            return

        self._handshake_ok = True
        self.retry_index = 0
        self.elapsed_ms = 0
        print("[MQTT] Connected Successfully.")
        self._announce_devices()

    def _on_disconnect(self, c, u, flags, rc, p=None):
        if self._connected:
            print(f"[MQTT] Disconnected from broker (code: {rc}).")
        self._connection_lost()

    def _on_message(self, client, userdata, msg):
        """Dispatch a command to the device that owns the topic."""
        self._events += 1
        try:
            try:
                payload = msg.payload.decode("utf-8")
            except UnicodeDecodeError:
                print(f"[MQTT] ERROR: Payload on {msg.topic} is not valid UTF-8, dropped.")
                return

            if config.DEBUG:
                print(f"[DEBUG] [MQTT] RX {msg.topic}: {payload}")

            handled = False
            for device in list(self._devices):
                if device.owns_topic(msg.topic):
                    device.route_message(msg.topic, payload)
                    handled = True
            if not handled:
                print(f"[MQTT] No registered device for topic {msg.topic}")
        except Exception as e:
            print(f"[MQTT] Error handling message: {e}")

    def _announce_devices(self):
        for device in list(self._devices):
            try:
                for topic in sorted(device.subscribe_topics()):
                    self.subscribe(topic)
                device.publish_discovery()
                device.publish_status()
            except (ConfigurationError, PublishError) as e:
                print(f"[MQTT] ERROR: Failed to announce device '{device.name}': {e}")

    # --- Network loop / backoff ---

    def process_messages(self, timeout_ms=1000, exit_on_first_event=False):
        """Advance the session for up to timeout_ms milliseconds.

        Connected: run the paho network loop, optionally returning after the
        first inbound message. Disconnected: wait, and try to reconnect once the
        backoff interval for the current retry index has elapsed.
        """
        if self._stopped:
            time.sleep(timeout_ms / 1000.0)
            return

        if not self._connected:
            self._drive_backoff(timeout_ms)
            return

        deadline = time.monotonic() + timeout_ms / 1000.0
        start_events = self._events
        while True:
            remaining = max(0.0, deadline - time.monotonic())
            rc = self.client.loop(timeout=remaining)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                print(f"[MQTT] Network loop error (rc={rc}), connection lost.")
                self._connection_lost()
                return
            if not self._connected:
                return
            if exit_on_first_event and self._events != start_events:
                return
            if time.monotonic() >= deadline:
                return

    def _drive_backoff(self, timeout_ms):
        time.sleep(timeout_ms / 1000.0)
        self.elapsed_ms += timeout_ms
        if self.elapsed_ms < BACKOFF_LADDER_MS[self.retry_index]:
            return

        print(f"[MQTT] Reconnect attempt (retry #{self.retry_index}) after {self.elapsed_ms} ms")
        if self.connect():
            # Retry index resets once the broker accepts the session.
            self.elapsed_ms = 0
        else:
            self._failed_attempt()

    # --- Outbound ---

    def subscribe(self, topic):
        result, _mid = self.client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            print(f"[MQTT] ERROR: Subscribe to {topic} failed (rc={result})")
            return False
        if config.DEBUG:
            print(f"[DEBUG] [MQTT] Subscribed to {topic}")
        return True

    def publish_message(self, topic, payload, retain=True):
        """JSON-encode and publish. Failures are logged and reported as False."""
        if not self._connected:
            print(f"[MQTT] Not connected, dropped message for {topic}")
            return False
        try:
            data = payload if isinstance(payload, str) else json.dumps(payload)
            info = self.client.publish(topic, data, retain=retain)
        except (TypeError, ValueError, OSError) as e:
            print(f"[MQTT] ERROR: Failed to publish to {topic}: {e}")
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            print(f"[MQTT] ERROR: Failed to publish to {topic} (rc={info.rc})")
            return False
        if config.DEBUG:
            print(f"[DEBUG] [MQTT] TX {topic}: {data}")
        return True
