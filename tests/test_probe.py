"""Tests for CapabilityProbe."""

import pytest

from hostrecon.host.probe import CapabilityProbe, ProbeConfig, ProbeKey
from tests.mocks import make_host


@pytest.fixture
def probe(host):
    return CapabilityProbe(host, ProbeConfig(root=host.root))


class TestSysctlProbes:

    def test_reads_proc_sys(self, probe):
        assert probe.probe(ProbeKey.TCP_CONGESTION_CONTROL) == ("cubic", True)
        assert probe.probe(ProbeKey.SWAPPINESS) == ("60", True)

    def test_whitespace_normalized(self, host, probe):
        host.set_sysctl("net.ipv4.tcp_rmem", "4096\t131072   6291456")
        assert probe.sysctl("net.ipv4.tcp_rmem") == "4096 131072 6291456"

    def test_missing_key_is_unsupported(self, tmp_path):
        host = make_host(tmp_path / "root", mptcp=False)
        probe = CapabilityProbe(host, ProbeConfig(root=host.root))
        assert probe.probe(ProbeKey.MPTCP_ENABLED) == (None, False)


class TestBbr:

    def test_listed_as_available(self, host, probe):
        host.set_sysctl("net.ipv4.tcp_available_congestion_control", "reno cubic bbr")
        assert probe.probe(ProbeKey.BBR_AVAILABLE) == ("yes", True)
        assert not host.called("modprobe")

    def test_loadable_module_is_unloaded_after_test(self, host, probe):
        assert probe.probe(ProbeKey.BBR_AVAILABLE) == ("yes", True)
        assert host.called("modprobe", "tcp_bbr")
        assert host.called("modprobe", "-r", "tcp_bbr")
        assert "tcp_bbr" not in host.loaded_modules

    def test_loaded_module_counts(self, host, probe):
        host.loaded_modules.add("tcp_bbr")
        assert probe.probe(ProbeKey.BBR_AVAILABLE) == ("yes", True)
        assert not host.called("modprobe")

    def test_unsupported(self, tmp_path):
        host = make_host(tmp_path / "root", bbr=False)
        probe = CapabilityProbe(host, ProbeConfig(root=host.root))
        assert probe.probe(ProbeKey.BBR_AVAILABLE) == (None, False)


class TestZram:

    def test_supported_from_sysfs(self, host, probe):
        assert probe.probe(ProbeKey.ZRAM_SUPPORTED) == ("yes", True)
        assert not host.called("modprobe")

    def test_unsupported(self, tmp_path):
        host = make_host(tmp_path / "root", zram=False)
        probe = CapabilityProbe(host, ProbeConfig(root=host.root))
        assert probe.probe(ProbeKey.ZRAM_SUPPORTED) == (None, False)

    def test_active_and_algorithm(self, host, probe):
        assert probe.probe(ProbeKey.ZRAM_ACTIVE) == ("no", True)
        assert probe.probe(ProbeKey.ZRAM_ALGORITHM) == (None, False)

        host.write("/etc/default/zramswap", "ALGO=zstd\n")
        host._zram_up()

        assert probe.probe(ProbeKey.ZRAM_ACTIVE) == ("yes", True)
        assert probe.probe(ProbeKey.ZRAM_ALGORITHM) == ("zstd", True)


class TestSsh:

    def test_effective_defaults(self, probe):
        assert probe.probe(ProbeKey.SSH_PORT) == ("22", True)
        assert probe.probe(ProbeKey.SSH_PERMIT_ROOT_LOGIN) == ("prohibit-password", True)
        assert probe.probe(ProbeKey.SSH_PASSWORD_AUTHENTICATION) == ("yes", True)

    def test_multiple_ports_sorted(self, host, probe):
        host.write("/etc/ssh/sshd_config.d/50-extra.conf", "Port 2222\nPort 443\n")
        assert probe.probe(ProbeKey.SSH_PORT) == ("443 2222", True)

    def test_without_password_alias(self, host, probe):
        host.write("/etc/ssh/sshd_config.d/50-old.conf", "PermitRootLogin without-password\n")
        assert probe.probe(ProbeKey.SSH_PERMIT_ROOT_LOGIN) == ("prohibit-password", True)

    def test_sshd_missing(self, host, probe):
        host.executables.discard("sshd")
        assert probe.probe(ProbeKey.SSHD_AVAILABLE) == (None, False)
        assert probe.probe(ProbeKey.SSH_PORT) == (None, False)

    def test_dropin_included(self, host, probe):
        assert probe.probe(ProbeKey.SSH_DROPIN_INCLUDED) == ("yes", True)
        host.write("/etc/ssh/sshd_config", "Port 22\n")
        assert probe.probe(ProbeKey.SSH_DROPIN_INCLUDED) == ("no", True)

    def test_authorized_keys_counted(self, host, probe):
        assert probe.probe(ProbeKey.SSH_AUTHORIZED_KEYS) == ("1", True)
        host.write("/root/.ssh/authorized_keys", "# ssh-rsa commented\n\n")
        assert probe.probe(ProbeKey.SSH_AUTHORIZED_KEYS) == ("0", True)


class TestNetworkState:

    def test_listening_ports(self, host, probe):
        host.set_listening(5533)
        assert probe.probe(ProbeKey.LISTENING_PORTS) == ("22 5533", True)

    def test_dns_listening(self, host, probe):
        assert probe.probe(ProbeKey.DNS_FORWARDER_LISTENING) == ("no", True)
        host.set_listening(5533)
        assert probe.probe(ProbeKey.DNS_FORWARDER_LISTENING) == ("yes", True)

    def test_default_interface(self, probe):
        assert probe.default_interface() == "eth0"


class TestHostResources:

    def test_memory_and_cores(self, probe):
        assert probe.probe(ProbeKey.MEM_TOTAL_MB) == ("3934", True)
        assert probe.probe(ProbeKey.CPU_CORES) == ("2", True)

    def test_meminfo_missing(self, host, probe):
        host.path("/proc/meminfo").unlink()
        assert probe.probe(ProbeKey.MEM_TOTAL_MB) == (None, False)

    def test_timezone_from_timedatectl(self, host, probe):
        host.timezone = "Asia/Tokyo"
        assert probe.probe(ProbeKey.TIMEZONE) == ("Asia/Tokyo", True)

    def test_timezone_file_fallback(self, host, probe):
        host.fail("timedatectl", "show", "-p", "Timezone")
        host.write("/etc/timezone", "Europe/London\n")
        assert probe.probe(ProbeKey.TIMEZONE) == ("Europe/London", True)


class TestCheck:

    def test_match_and_mismatch(self, probe):
        assert probe.check(ProbeKey.SWAPPINESS, "60").matches
        result = probe.check(ProbeKey.TCP_CONGESTION_CONTROL, "bbr")
        assert not result.matches
        assert result.key == "tcp_congestion_control"
        assert result.value == "cubic"

    def test_advisory_never_fails(self, tmp_path):
        host = make_host(tmp_path / "root", mptcp=False)
        probe = CapabilityProbe(host, ProbeConfig(root=host.root))
        result = probe.check(ProbeKey.MPTCP_ENABLED, "1", advisory=True)
        assert not result.supported
        assert result.matches
