#!/usr/bin/env python3

import os
import yaml
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, asdict, fields

from ..errors import ConfigError

DEFAULT_GEOLOCATION_SERVICES = [
    "https://ipapi.co/country_code",
    "https://ipinfo.io/country",
    "https://ifconfig.me/country-iso",
]

TRUTHY_VALUES = ("1", "true", "yes", "on")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

def env_flag(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in TRUTHY_VALUES

@dataclass
class SelectorConfig:
    # Filesystem root every APT path is resolved against
    root: str = "/"
    sources_list: str = None
    sources_dir: str = None
    lists_dir: str = None
    apt_conf_dir: str = None
    backup_dir: str = None
    os_release_path: str = None
    debian_version_path: str = None
    scan_dirs: List[str] = None
    # Behaviour toggles (FORCE_COUNTRY, DISABLE_SPEED_TEST, DEBUG)
    force_country: str = None
    disable_speed_test: bool = False
    debug: bool = False
    log_level: str = "INFO"
    # Geolocation probing
    geolocation_services: List[str] = None
    geolocation_timeout: float = 10.0
    geolocation_retries: int = 2
    # Package manager
    apt_timeout: int = 600
    apt_retries: int = 2
    speed_test_package: str = "debian-archive-keyring"
    speed_test_timeout: int = 60

    def __post_init__(self):
        if self.sources_list is None:
            self.sources_list = self._under_root("etc/apt/sources.list")

        if self.sources_dir is None:
            self.sources_dir = self._under_root("etc/apt/sources.list.d")

        if self.lists_dir is None:
            self.lists_dir = self._under_root("var/lib/apt/lists")

        if self.apt_conf_dir is None:
            self.apt_conf_dir = self._under_root("etc/apt/apt.conf.d")

        if self.backup_dir is None:
            self.backup_dir = os.path.dirname(self.sources_list)

        if self.os_release_path is None:
            self.os_release_path = self._under_root("etc/os-release")

        if self.debian_version_path is None:
            self.debian_version_path = self._under_root("etc/debian_version")

        if self.scan_dirs is None:
            self.scan_dirs = [self._under_root("etc")]

        if self.geolocation_services is None:
            self.geolocation_services = list(DEFAULT_GEOLOCATION_SERVICES)

    def _under_root(self, relative: str) -> str:
        return os.path.join(self.root, relative)

    @property
    def apt_dir(self) -> str:
        return self._under_root("etc/apt")

    @property
    def share_apt_dir(self) -> str:
        return self._under_root("usr/share/apt")

def validate_config(config: SelectorConfig) -> None:
    """Reject values that would only fail later, outside config loading"""
    for name in ("root", "sources_list", "sources_dir", "lists_dir", "apt_conf_dir",
                 "backup_dir", "os_release_path", "debian_version_path", "speed_test_package"):
        if not isinstance(getattr(config, name), str):
            raise ValueError(f"{name} must be a string")

    if config.force_country is not None and not isinstance(config.force_country, str):
        raise ValueError("force_country must be a string")

    if not isinstance(config.log_level, str) or config.log_level.upper() not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {config.log_level!r}")
    config.log_level = config.log_level.upper()

    for name in ("disable_speed_test", "debug"):
        if not isinstance(getattr(config, name), bool):
            raise ValueError(f"{name} must be true or false")

    for name in ("geolocation_timeout", "apt_timeout", "speed_test_timeout"):
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"{name} must be a positive number")

    for name in ("geolocation_retries", "apt_retries"):
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{name} must be a non-negative integer")

    for name in ("scan_dirs", "geolocation_services"):
        value = getattr(config, name)
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"{name} must be a list of strings")

class ConfigManager:
    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.environ = os.environ if environ is None else environ
        self._config: Optional[SelectorConfig] = None

    def _get_default_config_path(self) -> str:
        xdg_config = os.environ.get('XDG_CONFIG_HOME', '~/.config')
        return os.path.expanduser(f"{xdg_config}/mirror-select/config.yaml")

    def load_config(self) -> SelectorConfig:
        if self._config is not None:
            return self._config

        data: Dict[str, Any] = {}
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, 'r') as f:
                    data = yaml.safe_load(f) or {}

                if not isinstance(data, dict):
                    raise ValueError("top level must be a mapping")

                known = {field.name for field in fields(SelectorConfig)}
                unknown = sorted(set(data) - known)
                if unknown:
                    raise ValueError(f"unknown settings: {', '.join(unknown)}")

            config = SelectorConfig(**data)
            validate_config(config)

        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config from {self.config_path}: {e}")

        self._apply_environment(config)
        self._config = config
        return self._config

    def _apply_environment(self, config: SelectorConfig) -> None:
        """Environment variables win over the config file"""
        force_country = self.environ.get('FORCE_COUNTRY')
        if force_country:
            config.force_country = force_country

        if 'DISABLE_SPEED_TEST' in self.environ:
            config.disable_speed_test = env_flag(self.environ['DISABLE_SPEED_TEST'])

        if 'DEBUG' in self.environ:
            config.debug = env_flag(self.environ['DEBUG'])

    def save_config(self) -> None:
        if self._config is None:
            raise ConfigError("No config loaded to save")

        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
        self._create_config_template()

    def _create_config_template(self) -> None:
        """Create a config file with the current values and commented hints"""
        config_dict = asdict(self._config)

        template = f"""# APT Mirror Selector Configuration
# Generated by mirror-select

# Filesystem root all APT paths are derived from
root: {config_dict['root']}

# Region override (same as FORCE_COUNTRY), leave unset to auto-detect
# force_country: CN

# Optional checks (DISABLE_SPEED_TEST / DEBUG environment variables win)
disable_speed_test: {str(config_dict['disable_speed_test']).lower()}
debug: {str(config_dict['debug']).lower()}
log_level: {config_dict['log_level']}

# Geolocation services queried in order, each returning a bare country code
geolocation_timeout: {config_dict['geolocation_timeout']}
geolocation_retries: {config_dict['geolocation_retries']}
geolocation_services:
"""
        for service in config_dict['geolocation_services']:
            template += f"- {service}\n"

        template += f"""
# apt-get invocation limits
apt_timeout: {config_dict['apt_timeout']}
apt_retries: {config_dict['apt_retries']}
speed_test_package: {config_dict['speed_test_package']}
speed_test_timeout: {config_dict['speed_test_timeout']}

# Backups default to the directory holding sources.list
# backup_dir: /var/backups/apt
"""

        with open(self.config_path, 'w') as f:
            f.write(template)

    def get_config(self) -> SelectorConfig:
        if self._config is None:
            return self.load_config()
        return self._config
