#!/usr/bin/env python3

import os
import re
import fnmatch
import logging
from typing import Dict, List, Optional, Set
from dataclasses import dataclass, field
from urllib.parse import urlparse

from ..config.manager import SelectorConfig

logger = logging.getLogger(__name__)

SOURCE_NAME_PATTERNS = ("*.list", "*.conf", "sources*", "*.sources")
KNOWN_MIRROR_PATTERN = re.compile(r"deb\.debian\.org|archive\.ubuntu\.com")
PROXY_SETTING_PATTERN = re.compile(
    r"Acquire::https?::Proxy|APT::Get::AllowUnauthenticated"
)

def extract_hosts(content: str) -> Set[str]:
    """Hostnames referenced by one-line 'deb' entries and deb822 'URIs:' fields"""
    hosts = set()
    for line in content.splitlines():
        line = line.split('#', 1)[0].strip()
        if not line:
            continue

        urls: List[str] = []
        if line.startswith(("deb ", "deb-src ")):
            # Skip the optional [arch=... signed-by=...] block
            rest = re.sub(r"^deb(-src)?\s+(\[[^\]]*\]\s+)?", "", line)
            urls = rest.split()[:1]
        elif line.lower().startswith("uris:"):
            urls = line.split(':', 1)[1].split()

        for url in urls:
            hostname = urlparse(url).hostname
            if hostname:
                hosts.add(hostname)

    return hosts

def read_text(path: str) -> Optional[str]:
    try:
        with open(path, 'r', errors='replace') as f:
            return f.read()
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
        return None

@dataclass
class SourceState:
    locations: List[str] = field(default_factory=list)
    dropin_files: List[str] = field(default_factory=list)
    mirror_references: List[str] = field(default_factory=list)
    config_fragments: List[str] = field(default_factory=list)
    proxy_configs: List[str] = field(default_factory=list)
    hosts: Set[str] = field(default_factory=set)
    env_sources: bool = False
    primary_exists: bool = False

    def summary(self) -> Dict[str, int]:
        return {
            'locations': len(self.locations),
            'dropin_files': len(self.dropin_files),
            'mirror_references': len(self.mirror_references),
            'proxy_configs': len(self.proxy_configs),
            'hosts': len(self.hosts),
        }

class SourceStateInspector:
    def __init__(self, config: SelectorConfig, environ: Optional[Dict[str, str]] = None):
        self.config = config
        self.environ = os.environ if environ is None else environ

    def candidate_locations(self) -> List[str]:
        apt_dir = self.config.apt_dir
        return [
            self.config.sources_list,
            self.config.sources_dir,
            f"{self.config.sources_list}.save",
            f"{self.config.sources_dir}.save",
            self.config.lists_dir,
            os.path.join(self.config.share_apt_dir, "apt.conf.d"),
            self.config.apt_conf_dir,
            os.path.join(apt_dir, "apt.conf"),
            os.path.join(self.config.apt_conf_dir, "99mirrors"),
            os.path.join(self.config.apt_conf_dir, "99default-release"),
        ]

    def scan(self) -> SourceState:
        """Enumerate every location currently shaping APT source resolution"""
        logger.info("Searching for all APT sources locations...")
        state = SourceState()

        for location in self.candidate_locations():
            if not os.path.lexists(location):
                continue

            state.locations.append(location)
            logger.debug(f"Found: {location}")

            if os.path.isdir(location):
                for entry in sorted(os.listdir(location)):
                    entry_path = os.path.join(location, entry)
                    if os.path.isfile(entry_path):
                        logger.debug(f"  - {entry_path}")
                        state.locations.append(entry_path)

        state.primary_exists = os.path.isfile(self.config.sources_list)
        state.dropin_files = self._list_dropins()
        state.hosts = self._referenced_hosts(state)
        state.mirror_references = self._find_mirror_references()
        state.config_fragments, state.proxy_configs = self._find_config_fragments()

        if self.environ.get('APT_SOURCES'):
            logger.info("Found APT_SOURCES environment variable")
            state.env_sources = True

        logger.info(
            f"Source state: {len(state.locations)} locations, "
            f"{len(state.dropin_files)} drop-in files, "
            f"hosts: {', '.join(sorted(state.hosts)) or 'none'}"
        )
        return state

    def _list_dropins(self) -> List[str]:
        sources_dir = self.config.sources_dir
        if not os.path.isdir(sources_dir):
            return []

        return [
            os.path.join(sources_dir, name)
            for name in sorted(os.listdir(sources_dir))
            if os.path.isfile(os.path.join(sources_dir, name))
        ]

    def _referenced_hosts(self, state: SourceState) -> Set[str]:
        hosts = set()
        paths = ([self.config.sources_list] if state.primary_exists else []) + state.dropin_files
        for path in paths:
            content = read_text(path)
            if content:
                hosts.update(extract_hosts(content))
        return hosts

    def _find_mirror_references(self) -> List[str]:
        logger.info("Searching for files containing mirror references...")
        matches = []

        for scan_dir in self.config.scan_dirs:
            if not os.path.isdir(scan_dir):
                continue

            for dirpath, dirnames, filenames in os.walk(scan_dir):
                dirnames.sort()
                for filename in sorted(filenames):
                    file_path = os.path.join(dirpath, filename)
                    if not self._is_source_like(file_path):
                        continue

                    content = read_text(file_path)
                    if content and KNOWN_MIRROR_PATTERN.search(content):
                        logger.info(f"Found mirror reference in: {file_path}")
                        matches.append(file_path)

        return matches

    def _is_source_like(self, path: str) -> bool:
        name = os.path.basename(path)
        if not any(fnmatch.fnmatch(name, pattern) for pattern in SOURCE_NAME_PATTERNS):
            return False
        relative = os.path.relpath(path, self.config.root)
        if not ("apt" in relative or "sources" in relative):
            return False
        return os.path.isfile(path)

    def _find_config_fragments(self):
        fragments, proxies = [], []
        conf_dir = self.config.apt_conf_dir
        if not os.path.isdir(conf_dir):
            return fragments, proxies

        for name in sorted(os.listdir(conf_dir)):
            path = os.path.join(conf_dir, name)
            if not os.path.isfile(path):
                continue

            fragments.append(path)
            content = read_text(path)
            if content and PROXY_SETTING_PATTERN.search(content):
                logger.info(f"Found APT config file: {path}")
                proxies.append(path)

        return fragments, proxies

    def dump(self, package_manager=None) -> None:
        """Log the full content of the APT source configuration"""
        logger.info("Debugging APT sources configuration...")

        logger.info("=== Current sources.list content ===")
        content = read_text(self.config.sources_list)
        logger.info(content if content is not None else "No sources.list file found")

        logger.info("=== sources.list.d contents ===")
        if os.path.isdir(self.config.sources_dir):
            for path in self._list_dropins():
                logger.info(f"File: {path}\n{read_text(path) or ''}---")
        else:
            logger.info("No sources.list.d directory found")

        logger.info("=== APT configuration files ===")
        for path in self._find_config_fragments()[0]:
            logger.info(f"Config file: {path}\n{read_text(path) or ''}---")

        if package_manager is not None:
            logger.info("=== APT sources list (apt-cache policy) ===")
            policy = package_manager.policy().splitlines()[:20]
            logger.info("\n".join(policy))
