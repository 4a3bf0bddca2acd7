"""
hostrecon - Idempotent host-configuration reconciler for a Linux host.

Each module probes kernel, service and file state, applies a desired
configuration with backups of everything it overwrites, verifies the
result against measurable properties, and can revert on demand.

Usage:
    # As a command
    hostrecon all apply
    hostrecon ssh-security status

    # As a module
    python -m hostrecon network revert
"""

__version__ = "1.0.0"

__all__ = [
    "__version__",
]
