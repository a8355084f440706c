#!/usr/bin/env python3

import os
import shlex
import logging
from typing import Dict, Iterable, Optional
from dataclasses import dataclass

from ..errors import DistributionError, UnsupportedDistributionError

logger = logging.getLogger(__name__)

SUPPORTED_FAMILIES = ("debian", "ubuntu")

# /etc/debian_version major release -> codename
DEBIAN_CODENAMES = {
    "10": "buster",
    "11": "bullseye",
    "12": "bookworm",
    "13": "trixie",
}

@dataclass(frozen=True)
class DistributionIdentity:
    family: str
    version: str
    codename: str

    def __str__(self) -> str:
        return f"{self.family} {self.version} ({self.codename})"

def parse_os_release(content: str) -> Dict[str, str]:
    """Parse the KEY=value shell assignments of an os-release file"""
    values = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue

        key, _, raw_value = line.partition('=')
        try:
            tokens = shlex.split(raw_value)
        except ValueError:
            tokens = [raw_value.strip('"\'')]
        values[key.strip()] = tokens[0] if tokens else ""

    return values

class DistributionDetector:
    def __init__(self, os_release_path: str = "/etc/os-release",
                 debian_version_path: str = "/etc/debian_version",
                 supported_families: Iterable[str] = SUPPORTED_FAMILIES):
        self.os_release_path = os_release_path
        self.debian_version_path = debian_version_path
        self.supported_families = tuple(supported_families)

    def detect(self) -> DistributionIdentity:
        if os.path.isfile(self.os_release_path):
            identity = self._from_os_release()
        elif os.path.isfile(self.debian_version_path):
            identity = self._from_debian_version()
        else:
            raise DistributionError(
                f"Unable to detect distribution: neither {self.os_release_path} "
                f"nor {self.debian_version_path} exists"
            )

        if identity.family not in self.supported_families:
            raise UnsupportedDistributionError(
                f"Unsupported distribution '{identity.family}' "
                f"(supported: {', '.join(self.supported_families)})"
            )

        logger.info(f"Detected: {identity}")
        return identity

    def _from_os_release(self) -> DistributionIdentity:
        with open(self.os_release_path, 'r') as f:
            values = parse_os_release(f.read())

        family = values.get('ID', '').lower()
        version = values.get('VERSION_ID', '')
        codename = values.get('VERSION_CODENAME') or values.get('UBUNTU_CODENAME')

        if not codename and family == "debian" and os.path.isfile(self.debian_version_path):
            codename = self._codename_from_debian_version(self._read_debian_version())

        if not codename:
            raise DistributionError(
                f"Release codename for '{family or 'unknown'}' not found in {self.os_release_path}"
            )

        return DistributionIdentity(family=family, version=version, codename=codename)

    def _from_debian_version(self) -> DistributionIdentity:
        version = self._read_debian_version()
        codename = self._codename_from_debian_version(version)
        if not codename:
            raise DistributionError(
                f"Unknown Debian version '{version}' in {self.debian_version_path}"
            )

        return DistributionIdentity(family="debian", version=version, codename=codename)

    def _read_debian_version(self) -> str:
        with open(self.debian_version_path, 'r') as f:
            return f.read().strip()

    def _codename_from_debian_version(self, version: str) -> Optional[str]:
        # Testing and unstable carry "<codename>/sid" instead of a number
        if '/' in version:
            return version.split('/', 1)[0] or None

        major = version.split('.', 1)[0]
        return DEBIAN_CODENAMES.get(major)
