"""Local DNS-over-TLS forwarder (mosdns-x) on a loopback port."""

from typing import Dict, List

from ..host.paths import MOSDNS_CONFIG, MOSDNS_UNIT
from ..host.probe import ProbeKey
from ..protocol.errors import ActivationFailed, CapabilityUnsupported
from ..protocol.result import ProbeResult
from .base import Module

SERVICE = "mosdns-x"

CONFIG_TEMPLATE = """\
log:
  level: {log_level}
  file: ""

plugins:
  - tag: forward_dot_servers
    type: fast_forward
    args:
      upstream:
{upstreams}

servers:
  - exec: forward_dot_servers
    listeners:
      - protocol: udp
        addr: {listen}
      - protocol: tcp
        addr: {listen}"""

UNIT_TEMPLATE = """\
[Unit]
Description=mosdns-x - A DNS forwarder
After=network.target

[Service]
Type=simple
ExecStart={binary} start -c {config}
Restart=on-failure
RestartSec=5
LimitNOFILE=65536

[Install]
WantedBy=multi-user.target"""


class DnsForwarderModule(Module):
    name = "dns-forwarder"
    description = "mosdns-x forwarding to DoT upstreams on a loopback listener"
    marker = "mosdns-x"
    files = (MOSDNS_CONFIG, MOSDNS_UNIT)
    services = (SERVICE,)

    @property
    def settings(self):
        return self.ctx.config.dns

    def check_capabilities(self, notes: List[str]) -> None:
        _, ok = self.ctx.probe.probe(ProbeKey.DNS_FORWARDER_BINARY)
        if not ok:
            raise CapabilityUnsupported(
                f"DNS forwarder binary not found at {self.settings.binary}; install it first"
            )

    def blocks(self) -> Dict[str, str]:
        s = self.settings
        upstreams = "\n".join(f"        - addr: {u}" for u in s.upstreams)
        config = CONFIG_TEMPLATE.format(log_level=s.log_level, upstreams=upstreams, listen=s.listen)
        unit = UNIT_TEMPLATE.format(binary=s.binary, config=MOSDNS_CONFIG)
        return {MOSDNS_CONFIG: config, MOSDNS_UNIT: unit}

    def expectations(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        return [
            probe.check(ProbeKey.DNS_FORWARDER_BINARY, self.settings.binary),
            probe.check(ProbeKey.DNS_FORWARDER_LISTENING, "yes"),
        ]

    def _listening(self) -> bool:
        value, _ = self.ctx.probe.probe(ProbeKey.DNS_FORWARDER_LISTENING)
        return value == "yes"

    def activate(self, notes: List[str]) -> None:
        services = self.ctx.services
        if not services.daemon_reload():
            raise ActivationFailed("systemctl daemon-reload failed")
        if services.is_active(SERVICE) and not services.restart(SERVICE):
            raise ActivationFailed(
                f"restart of {SERVICE} failed", details=services.get_tail_logs(SERVICE)
            )
        services.ensure_running(SERVICE, self._listening, self.settings.max_wait)

    def deactivate(self, notes: List[str]) -> None:
        if not self.ctx.services.daemon_reload():
            notes.append("systemctl daemon-reload failed; removed unit may still be loaded")
