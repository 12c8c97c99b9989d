#!/usr/bin/env python3
"""
Entry point for nas-forge CLI tool.
"""

import sys

from nasforge.cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
