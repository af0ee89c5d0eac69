#!/usr/bin/env python3
"""
FILE: main.py
DESCRIPTION:
  Example runner. Registers the demo devices with the broker and keeps the
  polling loop going, faking state changes so the entities move in
  Home Assistant.
  - Examples: switch, on_off_light (also as several devices or several
    functions on one device), dimmable_light, number, temperature, hvac.
  - Broker settings default to config (options.json / environment).
"""
import argparse
import builtins
import importlib.util
import os
import random
import re
import sys
from datetime import datetime

# --- 0. FORCE COLOR ENVIRONMENT ---
os.environ["TERM"] = "xterm-256color"
os.environ["CLICOLOR_FORCE"] = "1"

# --- 1. GLOBAL LOGGING & COLOR SETUP ---
c_cyan    = "\033[1;36m"   # Bold Cyan (Device tags / JSON Keys)
c_magenta = "\033[1;35m"   # Bold Magenta (System Tags / DEBUG Header)
c_blue    = "\033[1;34m"   # Bold Blue (Logo)
c_green   = "\033[1;32m"   # Bold Green (DATA Header / INFO)
c_yellow  = "\033[1;33m"   # Bold Yellow (WARN Only)
c_red     = "\033[1;31m"   # Bold Red (ERROR)
c_white   = "\033[1;37m"   # Bold White (Values / Brackets / Colons)
c_dim     = "\033[37m"     # Standard White (Timestamp)
c_reset   = "\033[0m"

_original_print = builtins.print


def get_source_color(clean_text):
    clean = clean_text.lower()
    if "mqtt" in clean: return c_magenta
    if "startup" in clean: return c_magenta
    if "shutdown" in clean: return c_magenta
    if "discovery" in clean: return c_blue
    return c_cyan


def highlight_json(text):
    text = re.sub(r'("[^"]+")\s*:', f'{c_cyan}\\1{c_reset}{c_white}:{c_reset}', text)
    text = re.sub(r':\s*("[^"]+")', f': {c_white}\\1{c_reset}', text)
    text = re.sub(r':\s*(-?\d+\.?\d*)', f': {c_white}\\1{c_reset}', text)
    text = re.sub(r':\s*(true|false|null)', f': {c_white}\\1{c_reset}', text)
    return text


def timestamped_print(*args, **kwargs):
    now = datetime.now().strftime("%H:%M:%S")
    time_prefix = f"{c_dim}[{now}]{c_reset}"
    msg = " ".join(map(str, args))
    lower_msg = msg.lower()

    header = f"{c_green}INFO{c_reset}{c_white}:{c_reset}"

    if any(x in lower_msg for x in ["error", "critical", "failed"]):
        header = f"{c_red}ERROR{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("CRITICAL:", "").replace("ERROR:", "").strip()
    elif "warning" in lower_msg:
        header = f"{c_yellow}WARN{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("WARNING:", "").strip()
    elif msg.startswith("[DEBUG]"):
        header = f"{c_magenta}DEBUG{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("[DEBUG]", "", 1).strip()
        if "{" in msg and "}" in msg: msg = highlight_json(msg)

    match = re.match(r"^\[(.*?)\]\s*(.*)", msg)
    if match:
        src_text = match.group(1)
        rest_of_msg = match.group(2)
        s_color = get_source_color(src_text)
        msg = f"{c_white}[{c_reset}{s_color}{src_text}{c_reset}{c_white}]:{c_reset} {rest_of_msg}"

    _original_print(f"{time_prefix} {header} {msg}", flush=True, **kwargs)


builtins.print = timestamped_print


def check_dependencies():
    if importlib.util.find_spec("paho") is None:
        print("CRITICAL: Python dependency 'paho-mqtt' not found.")
        sys.exit(1)


import config
from device import Device
from devices import (
    DimmableLightDevice,
    HvacDevice,
    NumberDevice,
    OnOffLightDevice,
    SwitchDevice,
    TemperatureSensorDevice,
)
from functions import HvacAction, HvacFeature, OnOffLightFunction
from mqtt_handler import MQTTConnector
from utils import get_machine_id

EXAMPLES = (
    "switch",
    "on_off_light",
    "on_off_light_multiple_devices",
    "on_off_light_multiple_functions",
    "dimmable_light",
    "number",
    "temperature",
    "hvac",
)

LIGHT_COUNT = 5

HVAC_ALL_FEATURES = (
    HvacFeature.TEMPERATURE
    | HvacFeature.TEMPERATURE_CONTROL_HEATING
    | HvacFeature.TEMPERATURE_CONTROL_COOLING
    | HvacFeature.HUMIDITY
    | HvacFeature.HUMIDITY_CONTROL
    | HvacFeature.FAN_MODE
    | HvacFeature.SWING_MODE
    | HvacFeature.POWER_CONTROL
    | HvacFeature.MODE_CONTROL
    | HvacFeature.ACTION
    | HvacFeature.PRESET_SUPPORT
)


def show_logo(version):
    sys.stdout.write(f"\n{c_cyan}>>> hass-mqtt-device example runner ({c_reset}{c_yellow}{version}{c_reset}{c_cyan}) <<<{c_reset}\n\n")
    sys.stdout.flush()


def hvac_control(hvac, feature, value):
    """Apply a Home Assistant command to the fake unit and report it back."""
    print(f"[HVAC] Control: {feature.name} -> {value}")
    if feature == HvacFeature.TEMPERATURE_CONTROL_HEATING:
        hvac.update_heating_setpoint(float(value))
    elif feature == HvacFeature.TEMPERATURE_CONTROL_COOLING:
        hvac.update_cooling_setpoint(float(value))
    elif feature == HvacFeature.HUMIDITY_CONTROL:
        hvac.update_humidity_setpoint(float(value))
    elif feature == HvacFeature.MODE_CONTROL:
        hvac.update_device_mode(value)
    elif feature == HvacFeature.FAN_MODE:
        hvac.update_fan_mode(value)
    elif feature == HvacFeature.SWING_MODE:
        hvac.update_swing_mode(value)
    elif feature == HvacFeature.POWER_CONTROL:
        hvac.update_power_state(value == "on")
    elif feature == HvacFeature.PRESET_SUPPORT:
        hvac.update_preset_mode(value)
    else:
        print(f"[HVAC] ERROR: Unknown feature {feature!r}")


def build_example(kind, unique_id):
    """Return (devices, tick) for the chosen example. tick(loop_count) fakes activity."""
    name = f"simple_{kind}_example"
    uid = f"{unique_id}_simple_{kind}"

    if kind == "switch":
        device = SwitchDevice(name, uid, lambda state: device.update(state))

        def tick(n):
            if n % 10 == 0:
                device.update(not device.switch.state)
        return [device], tick

    if kind == "on_off_light":
        device = OnOffLightDevice(name, uid, lambda state: device.update(state))

        def tick(n):
            if n % 10 == 0:
                device.update(not device.light.state)
        return [device], tick

    if kind == "dimmable_light":
        device = DimmableLightDevice(name, uid, lambda state, brightness: device.update(state, brightness))

        def tick(n):
            if n % 10 == 0:
                device.update(True, random.random())
        return [device], tick

    if kind == "number":
        device = NumberDevice(name, uid, lambda value: device.update(value), max_value=100.0, min_value=0.0, step=0.5)

        def tick(n):
            if n == 0:
                device.update(50.0)
        return [device], tick

    if kind == "temperature":
        device = TemperatureSensorDevice(name, uid)
        state = {"temp": 21.0}

        def tick(n):
            if n % 10 == 0:
                state["temp"] = round(state["temp"] + random.uniform(-0.5, 0.5), 2)
                device.update(state["temp"])
        return [device], tick

    if kind == "hvac":
        device = HvacDevice(
            name,
            uid,
            hvac_control,
            HVAC_ALL_FEATURES,
            device_modes=["off", "heat", "cool", "auto", "dry", "fan_only"],
            fan_modes=["auto", "low", "medium", "high"],
            swing_modes=["off", "on"],
            preset_modes=["eco", "away"],
        )

        def tick(n):
            if n % 10 == 0:
                hvac = device.hvac
                hvac.update_temperature(round(20.0 + random.uniform(-2.0, 2.0), 1))
                hvac.update_humidity(round(45.0 + random.uniform(-5.0, 5.0), 1))
                if hvac.device_mode == "off":
                    hvac.update_action(HvacAction.OFF)
                elif hvac.temperature < hvac.heating_setpoint:
                    hvac.update_action(HvacAction.HEATING)
                elif hvac.temperature > hvac.cooling_setpoint:
                    hvac.update_action(HvacAction.COOLING)
                else:
                    hvac.update_action(HvacAction.IDLE)
        return [device], tick

    if kind == "on_off_light_multiple_devices":
        # One light per device. Ids must differ or the devices would share topics.
        devices = [
            OnOffLightDevice(f"{name}_{i}", f"{uid}_{i}", lambda state, i=i: devices[i].update(state))
            for i in range(LIGHT_COUNT)
        ]

        def tick(n):
            if n % 10 == 0:
                for light in devices:
                    light.update(not light.light.state)
        return devices, tick

    if kind == "on_off_light_multiple_functions":
        device = Device(name, uid)
        lights = [
            device.register_function(
                OnOffLightFunction(f"simple_on_off_light_{i}", lambda state, i=i: lights[i].update(state))
            )
            for i in range(LIGHT_COUNT)
        ]

        def tick(n):
            if n % 10 == 0:
                for light in lights:
                    light.update(not light.state)
        return [device], tick

    raise ValueError(f"Unknown example '{kind}'")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run a demo Home Assistant MQTT device.")
    parser.add_argument("--example", choices=EXAMPLES, default="switch")
    parser.add_argument("--host", default=config.MQTT_SETTINGS["host"])
    parser.add_argument("--port", type=int, default=config.MQTT_SETTINGS["port"])
    parser.add_argument("--user", default=config.MQTT_SETTINGS["user"])
    parser.add_argument("--password", default=config.MQTT_SETTINGS["pass"])
    parser.add_argument("--unique-id", default=None, help="Defaults to the machine id")
    parser.add_argument("--timeout-ms", type=int, default=1000)
    parser.add_argument("-d", "--debug", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    check_dependencies()
    if args.debug:
        config.DEBUG = True

    show_logo(f"v{config.SW_VERSION}")

    unique_id = args.unique_id or get_machine_id()
    devices, tick = build_example(args.example, unique_id)

    connector = MQTTConnector(args.host, args.port, args.user, args.password)
    for device in devices:
        connector.register_device(device)
        print(f"[STARTUP] Example '{args.example}' registered as {device.full_id}")
    connector.connect()

    loop_count = 0
    try:
        while True:
            connector.process_messages(args.timeout_ms)
            tick(loop_count)
            loop_count += 1
    except KeyboardInterrupt:
        print("\n[SHUTDOWN] Stopping MQTT...")
        connector.stop()


if __name__ == "__main__":
    main()
