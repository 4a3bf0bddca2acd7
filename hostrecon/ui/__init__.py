"""
UI module - Rich console interface.

Provides:
- Progress display
- Probe tables
- Run summary
- Interactive module selection
"""

from .console import ConsoleUI

__all__ = [
    "ConsoleUI",
]
