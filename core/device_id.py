"""
Device ID handling for the access gate.

A device identifies itself with the X-Device-ID header or the deviceId cookie.
The identifier is opaque to the proxy; the only requirement is a sane length.
"""

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

DEVICE_ID_HEADER = 'X-Device-ID'
DEVICE_ID_COOKIE = 'deviceId'


def validate_device_id(device_id: Optional[str]) -> bool:
    """
    Validate device ID format.

    Args:
        device_id: Device ID to validate

    Returns:
        bool: True if valid, False otherwise
    """
    if not device_id:
        return False

    if not isinstance(device_id, str):
        return False

    if len(device_id) < 8 or len(device_id) > 255:
        return False

    return True


def get_device_id_candidates(request) -> List[str]:
    """
    Collect device ID candidates from a request, header first.

    Args:
        request: aiohttp.web.Request

    Returns:
        list: Non-empty, stripped candidates (duplicates removed, order kept)
    """
    raw_candidates = [
        request.headers.get(DEVICE_ID_HEADER),
        request.cookies.get(DEVICE_ID_COOKIE),
    ]

    candidates = []
    for value in raw_candidates:
        value = '' if value is None else str(value).strip()
        if value and value not in candidates:
            candidates.append(value)

    return candidates
