#!/usr/bin/env python3

"""
APT Mirror Selector

Detects the host's region and rewrites the Debian/Ubuntu APT sources with
the closest mirror set, backing up the previous configuration and restoring
it when the package index refresh fails.
"""

__version__ = "1.0.0"
__author__ = "Mirror Select Project"
