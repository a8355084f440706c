#!/usr/bin/env python3

"""
Pytest configuration and shared fixtures for mirror-select test suite.
"""

import os
import sys
import tempfile
import pytest
from unittest.mock import Mock
from pathlib import Path

# Add the project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from mirror_select.config.manager import SelectorConfig
from mirror_select.distro.detector import DistributionIdentity
from mirror_select.packages.apt import AptPackageManager


DEBIAN_SOURCES = (
    "deb http://deb.debian.org/debian bookworm main\n"
    "deb http://deb.debian.org/debian bookworm-updates main\n"
    "deb http://deb.debian.org/debian-security bookworm-security main\n"
)

UBUNTU_SOURCES = (
    "deb http://archive.ubuntu.com/ubuntu/ jammy main restricted\n"
    "deb http://archive.ubuntu.com/ubuntu/ jammy-updates main restricted\n"
    "deb http://security.ubuntu.com/ubuntu/ jammy-security main restricted\n"
)


def write_file(path, content=""):
    """Create a file (and its parent directories) with the given content"""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as f:
        f.write(content)
    return path


def read_file(path):
    with open(path, 'r') as f:
        return f.read()


def make_apt_root(root):
    """Lay out the APT directories of a fresh system under root"""
    for directory in ["etc/apt/sources.list.d", "etc/apt/apt.conf.d", "var/lib/apt/lists"]:
        os.makedirs(os.path.join(root, directory), exist_ok=True)
    return root


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after test"""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir

    # Cleanup
    import shutil
    if os.path.exists(temp_dir):
        shutil.rmtree(temp_dir)


@pytest.fixture
def apt_root(temp_dir):
    """Provide an empty APT filesystem layout rooted in a temporary directory"""
    return make_apt_root(temp_dir)


@pytest.fixture
def selector_config(apt_root):
    """Provide a config whose paths all live under the temporary APT root"""
    return SelectorConfig(root=apt_root, disable_speed_test=True)


@pytest.fixture
def debian_bookworm():
    return DistributionIdentity(family="debian", version="12", codename="bookworm")


@pytest.fixture
def ubuntu_jammy():
    return DistributionIdentity(family="ubuntu", version="22.04", codename="jammy")


@pytest.fixture
def mock_package_manager():
    """Provide a package manager mock where every apt-get call succeeds"""
    manager = Mock(spec=AptPackageManager)
    manager.clean.return_value = True
    manager.update.return_value = True
    manager.download.return_value = True
    manager.policy.return_value = ""
    manager.update_debug_output.return_value = ""
    return manager


@pytest.fixture(autouse=True)
def setup_logging():
    """Set up logging for tests"""
    import logging

    logging.basicConfig(
        level=logging.WARNING,  # Only show warnings and errors in tests
        format="%(name)s - %(levelname)s - %(message)s"
    )

    logging.getLogger("urllib3").setLevel(logging.ERROR)


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def pytest_collection_modifyitems(config, items):
    """Mark end-to-end scenario classes as integration tests"""
    for item in items:
        if item.cls is not None and "EndToEnd" in item.cls.__name__:
            item.add_marker(pytest.mark.integration)
