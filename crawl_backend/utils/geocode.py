"""
Geocoding utilities for Indy Book Crawl

Resolves US ZIP codes to coordinates through the OpenStreetMap Nominatim
search API, with a small per-ZIP rate limit to stay within its usage policy.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request

logger = logging.getLogger(__name__)

# zip code -> monotonic time of the last lookup; lives as long as the Lambda container
_last_request: dict[str, float] = {}


class GeocodeUnavailable(Exception):
    """The geocoding service could not be reached or returned garbage."""


def is_rate_limited(identifier: str, window_seconds: float, now: float | None = None) -> bool:
    """
    Check and record a request for ``identifier``.

    Returns:
        bool: True if the previous request for the same identifier was less
        than ``window_seconds`` ago (the new request is then not recorded)
    """
    now = time.monotonic() if now is None else now

    # Drop stale entries so the map does not grow without bound
    for key, seen in list(_last_request.items()):
        if now - seen > window_seconds * 2:
            del _last_request[key]

    last = _last_request.get(identifier)
    if last is not None and now - last < window_seconds:
        return True

    _last_request[identifier] = now
    return False


def fetch_coordinates(
    zip_code: str, base_url: str, user_agent: str, timeout: float = 3
) -> dict[str, float] | None:
    """
    Look up latitude/longitude for a US ZIP code.

    Args:
        zip_code: Five-digit (or ZIP+4) postal code
        base_url: Nominatim search endpoint
        user_agent: User-Agent header, required by Nominatim
        timeout: Request timeout in seconds

    Returns:
        dict: {"latitude": float, "longitude": float}, or None if no match

    Raises:
        GeocodeUnavailable: On network errors or an unparseable response
    """
    query = urllib.parse.urlencode({"postalcode": zip_code, "country": "USA", "format": "json"})
    request = urllib.request.Request(f"{base_url}?{query}", headers={"User-Agent": user_agent})

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            data = json.loads(response.read())
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as e:
        logger.warning(f"Geocoding failed for zip code {zip_code}: {str(e)}")
        raise GeocodeUnavailable(str(e)) from e

    if not data:
        logger.info(f"No location found for zip code {zip_code}")
        return None

    try:
        return {"latitude": float(data[0]["lat"]), "longitude": float(data[0]["lon"])}
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise GeocodeUnavailable(f"Unexpected geocoding response: {data!r}") from e
