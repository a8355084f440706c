#!/usr/bin/env python3

"""
Command-line interface wrapper for mirror-select.

This module serves as the entry point for the console script installed
by pip.
"""

import sys

def main():
    """Entry point for the mirror-select CLI command."""
    from .main import main as main_func
    sys.exit(main_func())

if __name__ == "__main__":
    main()
