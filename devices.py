# devices.py
"""
FILE: devices.py
DESCRIPTION:
  Ready-made devices that wrap a single function.
  Each keeps a typed reference to its function, so callers update state
  directly (device.switch.update(True)) without looking it up by name.
"""
from device import Device
from functions import (
    DimmableLightFunction,
    HvacFunction,
    NumberFunction,
    OnOffLightFunction,
    SensorFunction,
    SwitchFunction,
    temperature_sensor_attributes,
)


class OnOffLightDevice(Device):
    def __init__(self, name, unique_id, control_cb, **kwargs):
        super().__init__(name, unique_id, **kwargs)
        self.light = self.register_function(OnOffLightFunction("on_off_light", control_cb))

    def update(self, state):
        return self.light.update(state)


class DimmableLightDevice(Device):
    def __init__(self, name, unique_id, control_cb, **kwargs):
        super().__init__(name, unique_id, **kwargs)
        self.light = self.register_function(DimmableLightFunction("dimmable_light", control_cb))

    def update(self, state, brightness=None):
        return self.light.update(state, brightness)


class SwitchDevice(Device):
    def __init__(self, name, unique_id, control_cb, **kwargs):
        super().__init__(name, unique_id, **kwargs)
        self.switch = self.register_function(SwitchFunction("switch", control_cb))

    def update(self, state):
        return self.switch.update(state)


class NumberDevice(Device):
    def __init__(self, name, unique_id, control_cb, max_value=100.0, min_value=0.0, step=1.0, **kwargs):
        super().__init__(name, unique_id, **kwargs)
        self.number = self.register_function(
            NumberFunction("number", control_cb, max_value, min_value, step)
        )

    def update(self, value):
        return self.number.update(value)


class TemperatureSensorDevice(Device):
    def __init__(self, name, unique_id, **kwargs):
        super().__init__(name, unique_id, **kwargs)
        self.sensor = self.register_function(
            SensorFunction("temperature", temperature_sensor_attributes(), value_type=float)
        )

    def update(self, temperature):
        return self.sensor.update(temperature)


class HvacDevice(Device):
    """Climate device. The control callback also receives the HvacFunction."""

    def __init__(
        self,
        name,
        unique_id,
        control_cb,
        supported_features,
        device_modes=None,
        fan_modes=None,
        swing_modes=None,
        preset_modes=None,
        **kwargs,
    ):
        super().__init__(name, unique_id, **kwargs)

        def _forward(feature, value):
            control_cb(hvac, feature, value)

        hvac = HvacFunction(
            "hvac",
            _forward,
            supported_features,
            device_modes,
            fan_modes,
            swing_modes,
            preset_modes,
        )
        self.hvac = self.register_function(hvac)
