# device.py
"""
FILE: device.py
DESCRIPTION:
  A Device groups one or more functions under a single Home Assistant device.
  - Shares one discovery identity (device block), availability topic and
    topic namespace (home/<full_id>/...).
  - Routes inbound command messages to the function that owns the topic.
"""
import weakref

import config
from errors import (
    ConfigurationError,
    DiscoveryPublishError,
    DuplicateCapabilityError,
    DuplicateTopicError,
)
from utils import STATE_PREFIX, availability_topic, sanitize

AVAILABILITY_ONLINE = "online"
AVAILABILITY_OFFLINE = "offline"
AVAILABILITY_TEMPLATE = "{{ value_json.availability }}"


class Device:
    def __init__(self, name, unique_id, manufacturer=None, model=None, sw_version=None):
        self.name = name
        self.clean_name = sanitize(name)
        self.unique_id = str(unique_id)
        self.manufacturer = manufacturer or config.MANUFACTURER
        self.model = model or config.MODEL
        self.sw_version = sw_version or config.SW_VERSION

        self._functions = []
        self._connector_ref = None

    # --- Identity ---

    @property
    def identity(self):
        """Registry key: no two devices on one connector may share it."""
        return (self.clean_name, self.unique_id)

    @property
    def full_id(self):
        connector = self.connector
        return self.full_id_for(connector.session_id if connector is not None else "")

    def full_id_for(self, session_id):
        own_id = sanitize(self.unique_id)
        return f"{session_id}_{own_id}" if session_id else own_id

    @property
    def availability_topic(self):
        return availability_topic(self.full_id)

    def device_info(self):
        """The 'device' block shared by every discovery message of this device."""
        return {
            "name": self.name,
            "identifiers": [self.full_id],
            "manufacturer": self.manufacturer,
            "model": self.model,
            "sw_version": self.sw_version,
        }

    # --- Connector back-reference ---

    @property
    def connector(self):
        if self._connector_ref is None:
            return None
        return self._connector_ref()

    def attach(self, connector):
        current = self.connector
        if current is not None and current is not connector:
            raise ConfigurationError(
                f"Device '{self.name}' is already registered with another connector"
            )
        self._connector_ref = weakref.ref(connector)

    def detach(self):
        self._connector_ref = None

    # --- Functions ---

    @property
    def functions(self):
        return list(self._functions)

    def register_function(self, function):
        for existing in self._functions:
            if existing.clean_name == function.clean_name:
                print(f"[DEVICE] ERROR: Function '{function.name}' clashes with '{existing.name}' on device '{self.name}'")
                raise DuplicateCapabilityError(
                    f"Device '{self.name}' already has a function named '{existing.clean_name}'"
                )
        function.attach(self)
        self._functions.append(function)
        return function

    def find_function(self, name):
        for function in self._functions:
            if function.name == name or function.clean_name == name:
                return function
        return None

    def subscribe_topics(self):
        topics = set()
        for function in self._functions:
            for topic in function.subscribe_topics():
                if topic in topics:
                    print(f"[DEVICE] ERROR: Duplicate topic {topic} found for device '{self.name}'")
                    raise DuplicateTopicError(f"Duplicate topic {topic} on device '{self.name}'")
                topics.add(topic)
        return topics

    # --- Inbound ---

    def owns_topic(self, topic):
        parts = topic.split("/")
        return len(parts) >= 3 and parts[0] == STATE_PREFIX and parts[1] == self.full_id

    def route_message(self, topic, payload):
        """Forward a message to the function named by the third topic segment."""
        if not self.owns_topic(topic):
            return False
        segment = topic.split("/")[2]
        for function in self._functions:
            if function.clean_name == segment:
                function.handle_message(topic, payload)
                return True
        print(f"[DEVICE] No function on '{self.name}' handles {topic}")
        return False

    # --- Outbound ---

    def publish_message(self, topic, payload, retain=True):
        connector = self.connector
        if connector is None:
            print(f"[DEVICE] ERROR: Failed to publish to {topic}: device '{self.name}' is not registered with a connector")
            return False
        return connector.publish_message(topic, payload, retain=retain)

    def publish_discovery(self):
        """Publish one retained discovery message per function.

        Raises DuplicateTopicError before anything is sent when two functions
        would share a discovery topic. Raises DiscoveryPublishError on the first
        failed publish; earlier messages stay published.
        """
        messages = {}
        device_block = self.device_info()
        for function in self._functions:
            topic = function.discovery_topic()
            if topic in messages:
                print(f"[DISCOVERY] ERROR: Duplicate discovery topic {topic} found for device '{self.name}'")
                raise DuplicateTopicError(f"Duplicate discovery topic {topic} on device '{self.name}'")
            payload = function.discovery_payload()
            payload["device"] = dict(device_block)
            payload["availability_topic"] = self.availability_topic
            payload["availability_template"] = AVAILABILITY_TEMPLATE
            messages[topic] = payload

        for topic, payload in messages.items():
            if config.DEBUG:
                print(f"[DEBUG] [DISCOVERY] {topic}: {payload}")
            if not self.publish_message(topic, payload, retain=True):
                print(f"[DISCOVERY] ERROR: Failed to send discovery message for device {self.name}-{self.unique_id} to {topic}")
                raise DiscoveryPublishError(topic)

    def publish_status(self):
        ok = self.publish_message(self.availability_topic, {"availability": AVAILABILITY_ONLINE}, retain=True)
        for function in self._functions:
            ok = (function.publish_status() is not False) and ok
        return ok

    def last_will(self):
        """(topic, payload) to install as the broker's last will before connecting."""
        return self.availability_topic, {"availability": AVAILABILITY_OFFLINE}

    def publish_offline(self):
        topic, payload = self.last_will()
        return self.publish_message(topic, payload, retain=True)

    def __repr__(self):
        return f"Device({self.name!r}, {self.unique_id!r})"
