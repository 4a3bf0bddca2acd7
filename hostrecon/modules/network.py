"""
Network optimisation: BBR + fq_codel, TCP Fast Open, buffer sizes,
forwarding, MPTCP (where the kernel has it) and raised file limits.
"""

from typing import Dict, List, Tuple

from ..host.paths import LIMITS_CONF, SYSCTL_CONF
from ..host.probe import ProbeKey
from ..protocol.errors import CapabilityUnsupported
from ..protocol.result import ProbeResult
from .base import Module

SYSCTL_SECTIONS: List[Tuple[str, List[Tuple[str, str]]]] = [
    ("File System", [
        ("fs.file-max", "1048576"),
    ]),
    ("Core Network Tuning", [
        ("net.core.somaxconn", "32768"),
        ("net.core.netdev_max_backlog", "32768"),
        ("net.core.rmem_max", "33554432"),
        ("net.core.wmem_max", "33554432"),
        ("net.core.default_qdisc", "fq_codel"),
    ]),
    ("TCP Tuning", [
        ("net.ipv4.tcp_congestion_control", "bbr"),
        ("net.ipv4.tcp_fastopen", "3"),
        ("net.ipv4.tcp_rmem", "4096 87380 33554432"),
        ("net.ipv4.tcp_wmem", "4096 16384 33554432"),
        ("net.ipv4.tcp_mem", "786432 1048576 26777216"),
        ("net.ipv4.tcp_syncookies", "1"),
        ("net.ipv4.tcp_fin_timeout", "30"),
        ("net.ipv4.tcp_tw_reuse", "1"),
        ("net.ipv4.ip_local_port_range", "10000 65000"),
        ("net.ipv4.tcp_max_syn_backlog", "16384"),
        ("net.ipv4.tcp_max_tw_buckets", "6000"),
        ("net.ipv4.tcp_timestamps", "0"),
        ("net.ipv4.tcp_max_orphans", "131072"),
        ("net.ipv4.tcp_notsent_lowat", "16384"),
        ("net.ipv4.tcp_keepalive_time", "600"),
        ("net.ipv4.tcp_sack", "1"),
        ("net.ipv4.tcp_window_scaling", "1"),
    ]),
    ("Forwarding", [
        ("net.ipv4.ip_forward", "1"),
        ("net.ipv4.conf.all.forwarding", "1"),
        ("net.ipv4.conf.default.forwarding", "1"),
    ]),
]

MPTCP_PARAMS: List[Tuple[str, str]] = [
    ("net.mptcp.enabled", "1"),
    ("net.mptcp.allow_join_initial_addr_port", "1"),
    ("net.mptcp.pm_type", "0"),
    ("net.mptcp.checksum_enabled", "0"),
    ("net.mptcp.stale_loss_cnt", "4"),
    ("net.mptcp.add_addr_timeout", "60000"),
    ("net.mptcp.close_timeout", "30000"),
    ("net.mptcp.scheduler", "default"),
]


class NetworkModule(Module):
    name = "network"
    description = "BBR, fq_codel, TCP Fast Open, buffers, MPTCP, file limits"
    marker = "Network Optimize"
    files = (SYSCTL_CONF, LIMITS_CONF)
    runtime_keys = tuple(
        key for _, params in SYSCTL_SECTIONS for key, _ in params
    ) + tuple(key for key, _ in MPTCP_PARAMS)

    @property
    def settings(self):
        return self.ctx.config.network

    def mptcp_supported(self) -> bool:
        _, ok = self.ctx.probe.probe(ProbeKey.MPTCP_ENABLED)
        return ok

    def check_capabilities(self, notes: List[str]) -> None:
        value, ok = self.ctx.probe.probe(ProbeKey.BBR_AVAILABLE)
        if not ok:
            raise CapabilityUnsupported("BBR is not available on this kernel (needs >= 4.9)")
        if self.settings.mptcp and not self.mptcp_supported():
            notes.append("MPTCP not supported by this kernel; skipped")

    def _mptcp_lines(self) -> List[str]:
        if not self.settings.mptcp or not self.mptcp_supported():
            return []
        probe = self.ctx.probe
        supported = [(k, v) for k, v in MPTCP_PARAMS if probe.sysctl(k) is not None]
        if not supported:
            return []
        return ["", "# --- MPTCP"] + [f"{k} = {v}" for k, v in supported]

    def blocks(self) -> Dict[str, str]:
        lines = []
        for title, params in SYSCTL_SECTIONS:
            if lines:
                lines.append("")
            lines.append(f"# --- {title}")
            lines.extend(f"{key} = {value}" for key, value in params)
        lines.extend(self._mptcp_lines())

        nofile = self.settings.nofile
        limits = "\n".join(
            f"{domain} {kind} nofile {nofile}"
            for domain in ("*", "root")
            for kind in ("soft", "hard")
        )
        return {SYSCTL_CONF: "\n".join(lines), LIMITS_CONF: limits}

    def expectations(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        results = [
            probe.check(ProbeKey.TCP_CONGESTION_CONTROL, "bbr"),
            probe.check(ProbeKey.DEFAULT_QDISC, "fq_codel"),
            probe.check(ProbeKey.TCP_FASTOPEN, "3"),
        ]
        if self.settings.mptcp and self.mptcp_supported():
            results.append(probe.check(ProbeKey.MPTCP_ENABLED, "1"))
        else:
            results.append(probe.check(ProbeKey.MPTCP_ENABLED, advisory=True))
        return results

    def status_probes(self) -> List[ProbeResult]:
        probe = self.ctx.probe
        return self.expectations() + [
            probe.check(ProbeKey.TCP_AVAILABLE_CONGESTION_CONTROL),
            probe.check(ProbeKey.KERNEL_RELEASE),
        ]

    def activate(self, notes: List[str]) -> None:
        # -e: keys missing on this kernel are not errors
        self.require(self.ctx.sysctl_load(SYSCTL_CONF), "sysctl -e -p")

        if not self.settings.apply_qdisc:
            return
        interface = self.ctx.probe.default_interface()
        if interface is None:
            notes.append("default-route interface not found; qdisc not replaced")
            return
        result = self.ctx.runner.run(["tc", "qdisc", "replace", "dev", interface, "root", "fq_codel"])
        if not result.ok:
            notes.append(f"tc qdisc replace on {interface} failed")
