#!/usr/bin/env python3

import re
import logging
import requests
from typing import List, Optional

from ..config.manager import DEFAULT_GEOLOCATION_SERVICES

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "US"

# Bodies some services return instead of an error status
SENTINEL_VALUES = ("null", "undefined")

# Answers from a geolocation service must be a bare ISO 3166-1 alpha-2 code
COUNTRY_CODE_PATTERN = re.compile(r"^[A-Za-z]{2}$")

def is_usable_code(value: Optional[str]) -> bool:
    if value is None:
        return False
    value = value.strip()
    return bool(value) and value.lower() not in SENTINEL_VALUES

class GeolocationProbe:
    """Query a single geolocation service for a bare country code"""

    def __init__(self, timeout: float = 10.0, retries: int = 2):
        self.timeout = timeout
        self.retries = retries

    def query(self, url: str) -> Optional[str]:
        attempts = 1 + max(self.retries, 0)

        for attempt in range(attempts):
            try:
                response = requests.get(url, timeout=self.timeout)
            except requests.Timeout:
                logger.debug(f"{url} timed out after {self.timeout}s (attempt {attempt + 1}/{attempts})")
                continue
            except requests.RequestException as e:
                logger.debug(f"{url} request failed (attempt {attempt + 1}/{attempts}): {e}")
                continue

            if not response.ok:
                logger.debug(f"{url} answered HTTP {response.status_code}")
                return None

            return response.text.replace('\r', '').replace('\n', '').strip()

        return None

class RegionResolver:
    def __init__(self, probe: GeolocationProbe, services: Optional[List[str]] = None):
        self.probe = probe
        self.services = list(services) if services is not None else list(DEFAULT_GEOLOCATION_SERVICES)

    def resolve(self, override: Optional[str] = None) -> str:
        if is_usable_code(override):
            logger.info(f"Forcing country {override.strip()}")
            return override.strip()

        logger.info("Detecting geographical location...")

        for service in self.services:
            logger.info(f"Trying service: {service}")
            country = self.probe.query(service)

            if is_usable_code(country) and COUNTRY_CODE_PATTERN.match(country):
                country = country.upper()
                logger.info(f"Location detected: {country}")
                return country

            if is_usable_code(country):
                logger.debug(f"Ignoring answer from {service}: {country[:40]!r}")

        logger.warning(f"Geolocation detection failed, using default ({DEFAULT_COUNTRY})")
        return DEFAULT_COUNTRY
