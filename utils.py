# utils.py
"""
FILE: utils.py
DESCRIPTION:
  Shared helper functions used across the project.
  - sanitize(): Turns free-text names into MQTT/Home Assistant safe identifiers.
  - base_topic() / availability_topic() / discovery_topic(): Topic layout.
  - get_machine_id(): Generates a unique ID for this host.
"""
import socket

import config

# Characters stripped from names before they are used in topics / unique ids.
# '-' is handled separately (replaced, not removed).
SPECIAL_CHARACTERS = "!@#$%^&*()[]{};:,./<>?\\|`~=+"

STATE_PREFIX = "home"
DISCOVERY_PREFIX = "homeassistant"

_STRIP_TABLE = str.maketrans("", "", SPECIAL_CHARACTERS)

# Global cache
_MACHINE_ID = None


def sanitize(name):
    """Cleans up a display name for use in topics and unique IDs.

    'Living Room-Lamp!' -> 'living_room_lamp'. Never returns an empty string.
    """
    cleaned = str(name).translate(_STRIP_TABLE)
    cleaned = cleaned.replace(" ", "_").replace("-", "_").lower()
    return cleaned if cleaned else "empty"


def base_topic(full_id, clean_name):
    return f"{STATE_PREFIX}/{full_id}/{clean_name}/"


def availability_topic(full_id):
    return f"{STATE_PREFIX}/{full_id}/availability"


def discovery_topic(component, full_id, clean_name):
    return f"{DISCOVERY_PREFIX}/{component}/{full_id}/{clean_name}/config"


def get_machine_id():
    global _MACHINE_ID
    if _MACHINE_ID:
        return _MACHINE_ID

    # 1. PREFERRED: Use Static ID from Config
    if config.BRIDGE_ID:
        _MACHINE_ID = sanitize(config.BRIDGE_ID)
        return _MACHINE_ID

    # 2. systemd machine id (stable across reboots)
    try:
        with open("/etc/machine-id", "r", encoding="utf-8") as f:
            mid = f.readline().strip()
        if mid:
            _MACHINE_ID = sanitize(mid)
            return _MACHINE_ID
    except OSError:
        pass

    # 3. FALLBACK: Use Hostname
    host_id = socket.gethostname() or "hass-mqtt-device"
    _MACHINE_ID = sanitize(host_id)
    return _MACHINE_ID
