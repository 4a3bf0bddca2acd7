"""Tests for the compressed swap module."""

import pytest

from hostrecon.modules import ZramModule
from hostrecon.protocol.result import Outcome
from tests.mocks import make_context, make_host


def test_apply_installs_and_starts_zramswap(host, ctx):
    result = ZramModule(ctx).apply()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert "installed zram-tools" in result.notes
    assert host.called("apt-get", "update", "-qq")
    assert host.units["zramswap"] == {"active": True, "enabled": True}
    assert host.get_sysctl("vm.swappiness") == "10"
    assert "ALGO=zstd\nPERCENT=100\nPRIORITY=100" in host.read("/etc/default/zramswap")
    assert {p.key: p.value for p in result.probes}["zram_algorithm"] == "zstd"


def test_second_apply_does_not_reinstall(host, ctx):
    module = ZramModule(ctx)
    module.apply()
    host.calls.clear()

    result = module.apply()

    assert not result.changed
    assert not host.called("apt-get")
    assert not host.called("systemctl", "restart")


def test_changed_algorithm_restarts_running_service(host, ctx):
    ZramModule(ctx).apply()
    ctx.config.zram.algorithm = "lz4"

    result = ZramModule(ctx).apply()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert host.called("systemctl", "restart", "zramswap")
    assert host.read("/etc/default/zramswap").count("ALGO=") == 1


def test_unsupported_kernel_is_skipped(tmp_path):
    host = make_host(tmp_path / "root", zram=False)

    result = ZramModule(make_context(host)).apply()

    assert result.outcome == Outcome.SKIPPED
    assert not host.called("apt-get")


def test_install_failure_is_dependency_failed(host, ctx):
    host.fail("apt-get", "install", stderr="E: Unable to locate package zram-tools")

    result = ZramModule(ctx).apply()

    assert result.error_kind == "DependencyFailed"
    assert result.failure.phase == "DEPENDENCIES"
    assert not host.path("/etc/default/zramswap").exists()


def test_service_never_ready(host, ctx, clock):
    host.on_start["zramswap"] = lambda: None

    result = ZramModule(ctx).apply()

    assert result.error_kind == "ServiceUnready"
    assert clock.now >= ctx.config.zram.max_wait
    assert result.failure.details


def test_revert_removes_created_files(host, ctx):
    module = ZramModule(ctx)
    module.apply()

    result = module.revert()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert not host.path("/etc/default/zramswap").exists()
    assert not host.path("/etc/sysctl.d/99-zram.conf").exists()
    assert host.units["zramswap"] == {"active": False, "enabled": False}
    assert host.get_sysctl("vm.swappiness") == "60"
    assert "zram-tools" in host.installed


@pytest.mark.parametrize("mem_mb, cores, percent", [
    (512, 1, 200),
    (1536, 2, 150),
    (3934, 8, 100),
    (7960, 2, 80),
    (7960, 4, 60),
])
def test_size_follows_installed_memory(tmp_path, mem_mb, cores, percent):
    host = make_host(tmp_path / "root", mem_mb=mem_mb, cores=cores)

    result = ZramModule(make_context(host)).apply()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert f"PERCENT={percent}\n" in host.read("/etc/default/zramswap")


def test_configured_percent_wins(host, ctx):
    ctx.config.zram.percent = 25

    ZramModule(ctx).apply()

    assert "PERCENT=25\n" in host.read("/etc/default/zramswap")


def test_unreadable_meminfo_uses_fallback(host, ctx):
    host.path("/proc/meminfo").unlink()

    ZramModule(ctx).apply()

    assert "PERCENT=50\n" in host.read("/etc/default/zramswap")


def test_revert_disables_before_restoring(host, ctx):
    module = ZramModule(ctx)
    module.apply()
    host.calls.clear()

    result = module.revert()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert host.calls[:2] == [["systemctl", "stop", "zramswap"], ["systemctl", "disable", "zramswap"]]
    assert host.units["zramswap"]["enabled"] is False


def test_failed_stop_keeps_files(host, ctx):
    module = ZramModule(ctx)
    module.apply()
    host.fail("systemctl", "stop", "zramswap", stderr="Job for zramswap.service canceled")

    result = module.revert()

    assert result.error_kind == "ActivationFailed"
    assert "systemctl stop zramswap failed" in result.cause
    assert "ALGO=zstd" in host.read("/etc/default/zramswap")
