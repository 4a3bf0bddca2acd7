"""
Mock components for testing hostrecon.

FakeHost simulates sysctl, systemctl, sshd, modprobe and the package
manager against a sandbox root, so whole modules can be applied,
verified and reverted without touching the real machine.
"""

from .fake_host import (
    FakeHost,
    FakeClock,
    make_host,
    make_context,
    DEFAULT_SYSCTL,
    MPTCP_SYSCTL,
    SAMPLE_KEY,
)

__all__ = [
    'FakeHost',
    'FakeClock',
    'make_host',
    'make_context',
    'DEFAULT_SYSCTL',
    'MPTCP_SYSCTL',
    'SAMPLE_KEY',
]
