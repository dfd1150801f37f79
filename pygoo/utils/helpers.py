"""Small value helpers: IP checks, string splitting and lenient JSON decoding."""

import ipaddress
import json
import re

from pygoo.utils.logger import get_logger

logger = get_logger()

_IP_PATTERN = re.compile(r'^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$')


def check_ip_in_range(ip, start, end):
    """Check if the IPv4 address `ip` lies within [start, end]."""
    try:
        address, low, high = (ipaddress.ip_address(a) for a in (ip, start, end))
    except ValueError:
        logger.debug(f"{ip}, {start} or {end} is not a valid IPv4 address")
        return False

    if any(a.version != 4 for a in (address, low, high)):
        logger.debug(f"{ip}, {start} or {end} is not a valid IPv4 address")
        return False

    if low <= address <= high:
        logger.debug(f"{ip} is between {start} and {end}")
        return True

    logger.debug(f"{ip} is NOT between {start} and {end}")
    return False


def is_ip(text):
    """Check the input looks like a dotted-quad IP address."""
    return bool(_IP_PATTERN.match(text))


def get_last_split(src, separator):
    """Get the last part of src split by separator."""
    return src.split(separator)[-1]


def _loads(text, expected_type):
    try:
        data = json.loads(text)
    except ValueError as e:
        logger.debug(f"Unmarshal error: jsonString[{text}], error[{e}]")
        return None

    if not isinstance(data, expected_type):
        logger.debug(f"Unmarshal error: jsonString[{text}], not a {expected_type.__name__}")
        return None

    return data


def json_string_to_map(text):
    """Decode a JSON object. Returns None for malformed input."""
    return _loads(text, dict)


def json_string_to_list(text):
    """Decode a JSON array. Returns None for malformed input."""
    return _loads(text, list)


def json_map_to_string(data):
    """Encode a mapping as compact JSON bytes."""
    return json.dumps(data, separators=(',', ':')).encode('utf-8')


def pretty_print_json_map(data):
    """Log the mapping as indented JSON (DEBUG level)."""
    logger.debug(json.dumps(data, indent=3, default=str))
