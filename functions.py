# functions.py
"""
FILE: functions.py
DESCRIPTION:
  Capability traits ("functions") that can be attached to a Device.
  Each function owns one piece of controllable/observable state and knows:
  - which command topics it listens on (subscribe_topics)
  - how it announces itself to Home Assistant (discovery_topic / discovery_payload)
  - how to decode an inbound command (handle_message)
  - how to republish its last known state (publish_status)

  Variants: on/off light, dimmable light, switch, number, sensor, hvac (climate).
"""
import enum
import json
import math
import weakref
from dataclasses import dataclass

import config
from errors import ConfigurationError, InvalidStepError
from utils import base_topic, discovery_topic, sanitize

STATE_ON = "ON"
STATE_OFF = "OFF"

VALUE_COMMAND_TEMPLATE = '{"value": "{{ value }}" }'
VALUE_STATE_TEMPLATE = "{{ value_json.value }}"


def _decode_json(tag, name, payload):
    """Parse a JSON payload. Logs and returns None when it is not valid JSON."""
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        print(f"[{tag}] ERROR: '{name}' received invalid JSON payload {payload!r}: {e}")
        return None


def _parse_float(value):
    """Best-effort conversion to a finite float. Returns None when impossible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(str(value).strip())
    except ValueError:
        return None
    return f if math.isfinite(f) else None


class FunctionBase:
    """Common contract for every capability trait.

    A function is created detached and becomes addressable once a Device
    registers it. The device reference is weak and set exactly once.
    """

    component = None
    log_tag = "FUNCTION"

    def __init__(self, name):
        self.name = name
        self.clean_name = sanitize(name)
        self._device_ref = None

    # --- Parent device ---

    @property
    def device(self):
        if self._device_ref is None:
            return None
        return self._device_ref()

    def attach(self, device):
        if self._device_ref is not None:
            raise ConfigurationError(
                f"Function '{self.name}' is already attached to a device"
            )
        self._device_ref = weakref.ref(device)
        if config.DEBUG:
            print(f"[DEBUG] [{self.log_tag}] Initialized '{self.name}' on device '{device.name}'")

    # --- Identity / topics ---

    @property
    def unique_id(self):
        device = self.device
        if device is None:
            return ""
        return f"{device.full_id}_{self.clean_name}"

    def base_topic(self):
        device = self.device
        if device is None:
            print(f"[{self.log_tag}] ERROR: Parent device of '{self.name}' is not available.")
            return ""
        return base_topic(device.full_id, self.clean_name)

    def subscribe_topics(self):
        return {self.base_topic() + "set"}

    def discovery_topic(self):
        device = self.device
        if device is None:
            print(f"[{self.log_tag}] ERROR: Parent device of '{self.name}' is not available.")
            return ""
        return discovery_topic(self.component, device.full_id, self.clean_name)

    def discovery_payload(self):
        return {
            "name": self.name,
            "unique_id": self.unique_id,
        }

    # --- Messaging ---

    def handle_message(self, topic, payload):
        raise NotImplementedError

    def publish_status(self):
        raise NotImplementedError

    def _is_command_topic(self, topic):
        if topic in self.subscribe_topics():
            return True
        if config.DEBUG:
            print(f"[DEBUG] [{self.log_tag}] Topic {topic} is not for '{self.name}'")
        return False

    def _publish(self, suffix, payload):
        device = self.device
        if device is None:
            print(f"[{self.log_tag}] ERROR: Parent device of '{self.name}' is no longer available.")
            return False
        return device.publish_message(self.base_topic() + suffix, payload)

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class _OnOffFunction(FunctionBase):
    """Shared ON/OFF handling for lights and switches."""

    def __init__(self, name, control_cb):
        super().__init__(name)
        self.control_cb = control_cb
        self.state = False

    def _decode_state(self, payload):
        text = payload.strip() if isinstance(payload, str) else payload
        if text in (STATE_ON, STATE_OFF):
            return text == STATE_ON, {}

        data = _decode_json(self.log_tag, self.name, payload)
        if data is None:
            return None, None
        if not isinstance(data, dict):
            print(f"[{self.log_tag}] ERROR: '{self.name}' expected a JSON object, got {payload!r}")
            return None, None

        state = data.get("state")
        if state not in (STATE_ON, STATE_OFF):
            print(f"[{self.log_tag}] ERROR: '{self.name}' received invalid state {state!r} (expected ON/OFF)")
            return None, None
        return state == STATE_ON, data

    def handle_message(self, topic, payload):
        if config.DEBUG:
            print(f"[DEBUG] [{self.log_tag}] Processing message for '{self.name}' on {topic}")
        if not self._is_command_topic(topic):
            return
        state, _data = self._decode_state(payload)
        if state is None:
            return
        self.control_cb(state)

    def publish_status(self):
        return self._publish("state", {"state": STATE_ON if self.state else STATE_OFF})

    def update(self, state):
        self.state = bool(state)
        return self.publish_status()


class OnOffLightFunction(_OnOffFunction):
    component = "light"
    log_tag = "LIGHT"

    def discovery_payload(self):
        payload = super().discovery_payload()
        topic = self.base_topic()
        payload["schema"] = "json"
        payload["state_topic"] = topic + "state"
        payload["command_topic"] = topic + "set"
        return payload


class SwitchFunction(_OnOffFunction):
    component = "switch"
    log_tag = "SWITCH"

    def discovery_payload(self):
        payload = super().discovery_payload()
        topic = self.base_topic()
        payload["state_topic"] = topic + "state"
        payload["command_topic"] = topic + "set"
        payload["payload_on"] = json.dumps({"state": STATE_ON})
        payload["payload_off"] = json.dumps({"state": STATE_OFF})
        payload["value_template"] = "{{ value_json.state }}"
        payload["state_on"] = STATE_ON
        payload["state_off"] = STATE_OFF
        return payload


class DimmableLightFunction(_OnOffFunction):
    """Light with brightness. Home Assistant speaks 0-255, we store 0-1."""

    component = "light"
    log_tag = "LIGHT"

    BRIGHTNESS_SCALE = 255

    def __init__(self, name, control_cb):
        super().__init__(name, control_cb)
        self.brightness = 0.0

    def discovery_payload(self):
        payload = super().discovery_payload()
        topic = self.base_topic()
        payload["schema"] = "json"
        payload["state_topic"] = topic + "state"
        payload["command_topic"] = topic + "set"
        payload["brightness"] = True
        payload["brightness_scale"] = self.BRIGHTNESS_SCALE
        return payload

    def handle_message(self, topic, payload):
        if config.DEBUG:
            print(f"[DEBUG] [{self.log_tag}] Processing message for '{self.name}' on {topic}")
        if not self._is_command_topic(topic):
            return
        state, data = self._decode_state(payload)
        if state is None:
            return

        if "brightness" not in data:
            self.control_cb(state, self.brightness)
            return

        raw = _parse_float(data.get("brightness"))
        if raw is None:
            print(f"[{self.log_tag}] ERROR: '{self.name}' received invalid brightness {data.get('brightness')!r}")
            return
        raw = min(max(raw, 0.0), float(self.BRIGHTNESS_SCALE))
        self.control_cb(state, raw / self.BRIGHTNESS_SCALE)

    def publish_status(self):
        return self._publish("state", {
            "state": STATE_ON if self.state else STATE_OFF,
            "brightness": int(round(self.brightness * self.BRIGHTNESS_SCALE)),
        })

    def update(self, state, brightness=None):
        self.state = bool(state)
        if brightness is not None:
            self.brightness = min(max(float(brightness), 0.0), 1.0)
        return self.publish_status()


class NumberFunction(FunctionBase):
    """Bounded numeric value (a slider/box in Home Assistant).

    Inbound values are clamped to [min, max] and snapped to the step grid
    starting at min. The control callback only fires when the snapped value
    differs from the last reported one.
    """

    component = "number"
    log_tag = "NUMBER"

    def __init__(self, name, control_cb, max_value=100.0, min_value=0.0, step=1.0):
        super().__init__(name)
        if step == 0:
            print(f"[{self.log_tag}] ERROR: Step size is 0 for '{name}', the slider would be undefined.")
            raise InvalidStepError(f"Step size of number '{name}' must not be 0")
        if max_value < min_value:
            raise ConfigurationError(
                f"Number '{name}' has max {max_value} smaller than min {min_value}"
            )
        self.control_cb = control_cb
        self.max = max_value
        self.min = min_value
        self.step = step
        self.value = None

    def discovery_payload(self):
        payload = super().discovery_payload()
        topic = self.base_topic()
        payload["state_topic"] = topic + "state"
        payload["value_template"] = VALUE_STATE_TEMPLATE
        payload["command_topic"] = topic + "set"
        payload["min"] = self.min
        payload["max"] = self.max
        payload["step"] = self.step
        return payload

    def clamp_quantize(self, value):
        value = min(max(float(value), self.min), self.max)
        step = abs(self.step)
        # Ties round up, away from min.
        snapped = self.min + math.floor((value - self.min) / step + 0.5) * step
        if snapped > self.max:
            snapped -= step
        # Keep float noise (0.1 * 3) out of published values.
        return round(snapped, 10)

    @staticmethod
    def _decode_value(payload):
        value = _parse_float(payload)
        if value is not None:
            return value
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            return None
        if isinstance(data, dict):
            data = data.get("value")
        return _parse_float(data)

    def handle_message(self, topic, payload):
        if config.DEBUG:
            print(f"[DEBUG] [{self.log_tag}] Processing message for '{self.name}' on {topic}")
        if not self._is_command_topic(topic):
            return

        value = self._decode_value(payload)
        if value is None:
            print(f"[{self.log_tag}] ERROR: '{self.name}' received a non-numeric value {payload!r}")
            return

        if value > self.max:
            print(f"[{self.log_tag}] Value {value} is larger than max value {self.max}, using max value.")
        elif value < self.min:
            print(f"[{self.log_tag}] Value {value} is smaller than min value {self.min}, using min value.")

        value = self.clamp_quantize(value)
        if value != self.value:
            self.control_cb(value)

    def publish_status(self):
        if self.value is None:
            return None
        return self._publish("state", {"value": self.value})

    def update(self, value):
        self.value = value
        return self.publish_status()


@dataclass
class SensorAttributes:
    device_class: str | None = None
    state_class: str | None = None
    unit_of_measurement: str | None = None
    suggested_display_precision: int | None = None


def temperature_sensor_attributes():
    return SensorAttributes(
        device_class="temperature",
        state_class="measurement",
        unit_of_measurement="°C",
        suggested_display_precision=1,
    )


def humidity_sensor_attributes():
    return SensorAttributes(
        device_class="humidity",
        state_class="measurement",
        unit_of_measurement="%",
        suggested_display_precision=0,
    )


class SensorFunction(FunctionBase):
    """Read-only value. Nothing is published until the first update()."""

    component = "sensor"
    log_tag = "SENSOR"

    def __init__(self, name, attributes=None, value_type=None):
        super().__init__(name)
        self.attributes = attributes or SensorAttributes()
        self.value_type = value_type
        self.value = None
        self.has_data = False

    def subscribe_topics(self):
        return set()

    def discovery_payload(self):
        payload = super().discovery_payload()
        payload["state_topic"] = self.base_topic() + "state"
        payload["value_template"] = VALUE_STATE_TEMPLATE
        attrs = self.attributes
        if attrs.device_class:
            payload["device_class"] = attrs.device_class
        if attrs.state_class:
            payload["state_class"] = attrs.state_class
        if attrs.unit_of_measurement:
            payload["unit_of_measurement"] = attrs.unit_of_measurement
        if attrs.suggested_display_precision is not None:
            payload["suggested_display_precision"] = attrs.suggested_display_precision
        return payload

    def handle_message(self, topic, payload):
        return

    def publish_status(self):
        if not self.has_data:
            return None
        return self._publish("state", {"value": self.value})

    def update(self, value):
        if self.value_type is not None and not isinstance(value, self.value_type):
            try:
                value = self.value_type(value)
            except (TypeError, ValueError):
                print(f"[{self.log_tag}] ERROR: '{self.name}' cannot store {value!r} as {self.value_type.__name__}")
                return False
        self.value = value
        self.has_data = True
        return self.publish_status()


class HvacFeature(enum.IntFlag):
    TEMPERATURE = 0x0001
    TEMPERATURE_CONTROL_HEATING = 0x0002
    TEMPERATURE_CONTROL_COOLING = 0x0004
    HUMIDITY = 0x0010
    HUMIDITY_CONTROL = 0x0020
    FAN_MODE = 0x0100
    SWING_MODE = 0x0200
    POWER_CONTROL = 0x1000  # On/Off
    MODE_CONTROL = 0x2000  # auto, cool, heat, dry, fan_only...
    ACTION = 0x4000  # What the unit is doing right now, see HvacAction
    PRESET_SUPPORT = 0x8000


class HvacAction(enum.Enum):
    OFF = "off"
    HEATING = "heating"
    COOLING = "cooling"
    DRYING = "drying"
    IDLE = "idle"
    FAN = "fan"


# feature -> (state sub-topic, payload key, attribute)
_HVAC_STATUS = {
    HvacFeature.TEMPERATURE: ("temperature/measured", "temperature", "temperature"),
    HvacFeature.TEMPERATURE_CONTROL_HEATING: ("heating_temperature/state", "value", "heating_setpoint"),
    HvacFeature.TEMPERATURE_CONTROL_COOLING: ("cooling_temperature/state", "value", "cooling_setpoint"),
    HvacFeature.HUMIDITY: ("humidity/measured", "humidity", "humidity"),
    HvacFeature.HUMIDITY_CONTROL: ("humidity/state", "value", "humidity_setpoint"),
    HvacFeature.FAN_MODE: ("fan_mode/state", "value", "fan_mode"),
    HvacFeature.SWING_MODE: ("swing_mode/state", "value", "swing_mode"),
    HvacFeature.MODE_CONTROL: ("mode/state", "value", "device_mode"),
    HvacFeature.ACTION: ("action/state", "action", "action"),
    HvacFeature.PRESET_SUPPORT: ("preset_mode/state", "value", "preset_mode"),
}

# feature -> command sub-topic
_HVAC_COMMANDS = {
    HvacFeature.TEMPERATURE_CONTROL_HEATING: "heating_temperature/set",
    HvacFeature.TEMPERATURE_CONTROL_COOLING: "cooling_temperature/set",
    HvacFeature.HUMIDITY_CONTROL: "humidity/set",
    HvacFeature.FAN_MODE: "fan_mode/set",
    HvacFeature.SWING_MODE: "swing_mode/set",
    HvacFeature.POWER_CONTROL: "set",
    HvacFeature.MODE_CONTROL: "mode/set",
    HvacFeature.PRESET_SUPPORT: "preset_mode/set",
}

_HVAC_NUMERIC_COMMANDS = {
    HvacFeature.TEMPERATURE_CONTROL_HEATING,
    HvacFeature.TEMPERATURE_CONTROL_COOLING,
    HvacFeature.HUMIDITY_CONTROL,
}


class HvacFunction(FunctionBase):
    """Climate entity whose topics and fields are gated by a feature bitmask.

    The control callback receives (HvacFeature, value_string) for every valid
    command. The application decides what to do and reports back through the
    update_*() methods.
    """

    component = "climate"
    log_tag = "HVAC"

    def __init__(
        self,
        name,
        control_cb,
        supported_features,
        device_modes=None,
        fan_modes=None,
        swing_modes=None,
        preset_modes=None,
    ):
        super().__init__(name)
        self.control_cb = control_cb
        self.supported_features = HvacFeature(supported_features)
        self.device_modes = list(device_modes or [])
        self.fan_modes = list(fan_modes or [])
        self.swing_modes = list(swing_modes or [])
        self.preset_modes = list(preset_modes or [])

        self.power = False
        self.temperature = 0.0
        self.heating_setpoint = 18.0
        self.cooling_setpoint = 25.0
        self.humidity = 0.0
        self.humidity_setpoint = 60.0
        self.fan_mode = "auto"
        self.swing_mode = "off"
        self.device_mode = "off"
        self.device_mode_last = None
        self.action = HvacAction.OFF
        self.preset_mode = "none"

    def supports(self, feature):
        return (self.supported_features & feature) == feature

    def subscribe_topics(self):
        topic = self.base_topic()
        return {
            topic + suffix
            for feature, suffix in _HVAC_COMMANDS.items()
            if self.supports(feature)
        }

    def discovery_payload(self):
        payload = super().discovery_payload()
        topic = self.base_topic()

        if self.supports(HvacFeature.TEMPERATURE):
            payload["current_temperature_topic"] = topic + "temperature/measured"
            payload["current_temperature_template"] = "{{ value_json.temperature }}"

        def _controlled(prefix, command, state):
            payload[f"{prefix}_command_topic"] = topic + command
            payload[f"{prefix}_command_template"] = VALUE_COMMAND_TEMPLATE
            payload[f"{prefix}_state_topic"] = topic + state
            payload[f"{prefix}_state_template"] = VALUE_STATE_TEMPLATE

        if self.supports(HvacFeature.TEMPERATURE_CONTROL_HEATING):
            _controlled("temperature_low", "heating_temperature/set", "heating_temperature/state")
        if self.supports(HvacFeature.TEMPERATURE_CONTROL_COOLING):
            _controlled("temperature_high", "cooling_temperature/set", "cooling_temperature/state")
        if self.supports(HvacFeature.HUMIDITY):
            payload["current_humidity_topic"] = topic + "humidity/measured"
            payload["current_humidity_template"] = "{{ value_json.humidity }}"
        if self.supports(HvacFeature.HUMIDITY_CONTROL):
            _controlled("target_humidity", "humidity/set", "humidity/state")
        if self.supports(HvacFeature.FAN_MODE):
            _controlled("fan_mode", "fan_mode/set", "fan_mode/state")
            payload["fan_modes"] = list(self.fan_modes)
        if self.supports(HvacFeature.SWING_MODE):
            _controlled("swing_mode", "swing_mode/set", "swing_mode/state")
            payload["swing_modes"] = list(self.swing_modes)
        if self.supports(HvacFeature.POWER_CONTROL):
            payload["power_command_topic"] = topic + "set"
            payload["power_command_template"] = VALUE_COMMAND_TEMPLATE
            payload["payload_on"] = "on"
            payload["payload_off"] = "off"
        if self.supports(HvacFeature.MODE_CONTROL):
            _controlled("mode", "mode/set", "mode/state")
            payload["modes"] = list(self.device_modes)
        if self.supports(HvacFeature.ACTION):
            payload["action_topic"] = topic + "action/state"
            payload["action_template"] = "{{ value_json.action }}"
        if self.supports(HvacFeature.PRESET_SUPPORT):
            payload["preset_mode_command_topic"] = topic + "preset_mode/set"
            payload["preset_mode_command_template"] = VALUE_COMMAND_TEMPLATE
            payload["preset_mode_state_topic"] = topic + "preset_mode/state"
            payload["preset_mode_value_template"] = VALUE_STATE_TEMPLATE
            payload["preset_modes"] = list(self.preset_modes)

        return payload

    def _allowed_values(self, feature):
        if feature == HvacFeature.POWER_CONTROL:
            return ["on", "off"]
        if feature == HvacFeature.MODE_CONTROL:
            return self.device_modes
        if feature == HvacFeature.FAN_MODE:
            return self.fan_modes
        if feature == HvacFeature.SWING_MODE:
            return self.swing_modes
        if feature == HvacFeature.PRESET_SUPPORT:
            return self.preset_modes
        return []

    def handle_message(self, topic, payload):
        if config.DEBUG:
            print(f"[DEBUG] [{self.log_tag}] Processing message for '{self.name}' on {topic}: {payload}")

        base = self.base_topic()
        feature = None
        for f, suffix in _HVAC_COMMANDS.items():
            if self.supports(f) and topic == base + suffix:
                feature = f
                break
        if feature is None:
            print(f"[{self.log_tag}] ERROR: Topic {topic} is not a command topic of '{self.name}'")
            return

        data = _decode_json(self.log_tag, self.name, payload)
        if data is None:
            return
        if not isinstance(data, dict) or data.get("value") is None:
            print(f"[{self.log_tag}] ERROR: '{self.name}' expected {{\"value\": ...}}, got {payload!r}")
            return

        value = str(data["value"]).strip()

        if feature in _HVAC_NUMERIC_COMMANDS:
            if _parse_float(value) is None:
                print(f"[{self.log_tag}] ERROR: '{self.name}' received non-numeric {feature.name} value {value!r}")
                return
        else:
            allowed = self._allowed_values(feature)
            if allowed and value not in allowed:
                print(f"[{self.log_tag}] ERROR: '{self.name}' received unsupported {feature.name} value {value!r} (allowed: {allowed})")
                return

        self.control_cb(feature, value)

    # --- Status ---

    def publish_feature_status(self, feature):
        """Publish the state sub-topic of a single feature (if enabled)."""
        feature = HvacFeature(feature)
        if feature == HvacFeature.POWER_CONTROL:
            # Power is reflected through the operating mode.
            feature = HvacFeature.MODE_CONTROL

        entry = _HVAC_STATUS.get(feature)
        if entry is None or not self.supports(feature):
            if config.DEBUG:
                print(f"[DEBUG] [{self.log_tag}] Feature {feature!r} is not supported by '{self.name}'")
            return False

        suffix, key, attr = entry
        value = getattr(self, attr)
        if isinstance(value, HvacAction):
            value = value.value
        return self._publish(suffix, {key: value})

    def publish_status(self):
        ok = True
        for feature in _HVAC_STATUS:
            if self.supports(feature):
                ok = self.publish_feature_status(feature) and ok
        return ok

    # --- Updates (application -> hub) ---

    def _gate(self, feature, label):
        if self.supports(feature):
            return True
        print(f"[{self.log_tag}] ERROR: {label} is not supported by '{self.name}'.")
        return False

    def update_temperature(self, temperature, send_status=True):
        if not self._gate(HvacFeature.TEMPERATURE, "Temperature"):
            return
        self.temperature = temperature
        if send_status:
            self.publish_feature_status(HvacFeature.TEMPERATURE)

    def update_heating_setpoint(self, setpoint, send_status=True):
        if not self._gate(HvacFeature.TEMPERATURE_CONTROL_HEATING, "Heating setpoint"):
            return
        self.heating_setpoint = setpoint
        if send_status:
            self.publish_feature_status(HvacFeature.TEMPERATURE_CONTROL_HEATING)

    def update_cooling_setpoint(self, setpoint, send_status=True):
        if not self._gate(HvacFeature.TEMPERATURE_CONTROL_COOLING, "Cooling setpoint"):
            return
        self.cooling_setpoint = setpoint
        if send_status:
            self.publish_feature_status(HvacFeature.TEMPERATURE_CONTROL_COOLING)

    def update_humidity(self, humidity, send_status=True):
        if not self._gate(HvacFeature.HUMIDITY, "Humidity"):
            return
        self.humidity = humidity
        if send_status:
            self.publish_feature_status(HvacFeature.HUMIDITY)

    def update_humidity_setpoint(self, setpoint, send_status=True):
        if not self._gate(HvacFeature.HUMIDITY_CONTROL, "Humidity setpoint"):
            return
        self.humidity_setpoint = setpoint
        if send_status:
            self.publish_feature_status(HvacFeature.HUMIDITY_CONTROL)

    def update_fan_mode(self, fan_mode, send_status=True):
        if not self._gate(HvacFeature.FAN_MODE, "Fan mode"):
            return
        self.fan_mode = fan_mode
        if send_status:
            self.publish_feature_status(HvacFeature.FAN_MODE)

    def update_swing_mode(self, swing_mode, send_status=True):
        if not self._gate(HvacFeature.SWING_MODE, "Swing mode"):
            return
        self.swing_mode = swing_mode
        if send_status:
            self.publish_feature_status(HvacFeature.SWING_MODE)

    def _default_on_mode(self):
        for mode in self.device_modes:
            if mode != "off":
                return mode
        return "auto"

    def update_power_state(self, power, send_status=True):
        """Power off remembers the running mode; power on restores it."""
        if not self._gate(HvacFeature.POWER_CONTROL, "Power control"):
            return
        power = bool(power)
        if not power:
            self.device_mode_last = self.device_mode
            self.device_mode = "off"
        elif self.device_mode_last is not None:
            self.device_mode = self.device_mode_last
        elif self.device_mode == "off":
            # Never powered off through us; pick the first usable mode.
            self.device_mode = self._default_on_mode()
        self.power = power
        if send_status:
            self.publish_feature_status(HvacFeature.MODE_CONTROL)

    def update_device_mode(self, device_mode, send_status=True):
        if not self._gate(HvacFeature.MODE_CONTROL, "Device mode"):
            return
        self.device_mode = device_mode
        self.power = device_mode != "off"
        if send_status:
            self.publish_feature_status(HvacFeature.MODE_CONTROL)

    def update_action(self, action, send_status=True):
        if not self._gate(HvacFeature.ACTION, "Action"):
            return
        try:
            self.action = HvacAction(action)
        except ValueError:
            print(f"[{self.log_tag}] ERROR: '{self.name}' received unknown action {action!r}")
            return
        if send_status:
            self.publish_feature_status(HvacFeature.ACTION)

    def update_preset_mode(self, preset_mode, send_status=True):
        if not self._gate(HvacFeature.PRESET_SUPPORT, "Preset mode"):
            return
        self.preset_mode = preset_mode
        if send_status:
            self.publish_feature_status(HvacFeature.PRESET_SUPPORT)
