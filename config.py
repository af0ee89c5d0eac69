# config.py
"""
FILE: config.py
DESCRIPTION:
  Runtime settings for the MQTT device bridge.
  - Reads Home Assistant add-on options (/data/options.json) when present.
  - Environment variables override add-on options (standalone / Docker use).
"""
import json
import os

OPTIONS_PATH = os.getenv("OPTIONS_PATH", "/data/options.json")


def _load_options(path):
    """Return the add-on options dict, or {} when unavailable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in {"1", "true", "on", "yes"}:
        return True
    if v in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value, default):
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(str(value).strip())
    except ValueError:
        return default


_options = _load_options(OPTIONS_PATH)


def _setting(env_key, option_key, default=None):
    v = os.getenv(env_key)
    if v is not None and v != "":
        return v
    v = _options.get(option_key)
    if v is not None and v != "":
        return v
    return default


MQTT_SETTINGS = {
    "host": str(_setting("MQTT_HOST", "mqtt_host", "localhost")),
    "port": _parse_int(_setting("MQTT_PORT", "mqtt_port", 1883), 1883),
    "user": _setting("MQTT_USER", "mqtt_user"),
    "pass": _setting("MQTT_PASS", "mqtt_pass"),
}

MQTT_KEEPALIVE = _parse_int(_setting("MQTT_KEEPALIVE", "mqtt_keepalive", 60), 60)

# Namespaces every topic of this process. Empty -> derived from the machine id.
BRIDGE_ID = str(_setting("BRIDGE_ID", "bridge_id", "") or "")

DEBUG = _parse_bool(_setting("DEBUG", "debug", False))

# Device registry block published with every discovery message.
MANUFACTURER = "Homebrew"
MODEL = "hass_mqtt_device"
SW_VERSION = "0.1.0"
