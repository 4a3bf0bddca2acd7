"""
Entry point for running hostrecon as a module.

Usage:
    python -m hostrecon all status
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
