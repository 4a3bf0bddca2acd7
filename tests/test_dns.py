"""Tests for the DNS forwarder module."""

from hostrecon.modules import DnsForwarderModule
from hostrecon.protocol.result import Outcome
from tests.mocks import make_context, make_host


def test_apply_writes_config_and_unit(host, ctx):
    result = DnsForwarderModule(ctx).apply()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    config = host.read("/etc/mosdns-x/config.yaml")
    assert "        - addr: tls://1.1.1.1" in config
    assert "addr: 127.0.0.1:5533" in config
    unit = host.read("/etc/systemd/system/mosdns-x.service")
    assert "ExecStart=/usr/local/bin/mosdns-x start -c /etc/mosdns-x/config.yaml" in unit
    assert host.called("systemctl", "daemon-reload")
    assert host.units["mosdns-x"]["active"]


def test_custom_listen_port(host, ctx):
    ctx.config.dns.listen = "127.0.0.1:5353"
    ctx.probe.config.dns_listen = "127.0.0.1:5353"

    result = DnsForwarderModule(ctx).apply()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert "addr: 127.0.0.1:5353" in host.read("/etc/mosdns-x/config.yaml")


def test_missing_binary_is_skipped(tmp_path):
    host = make_host(tmp_path / "root", dns_binary=False)

    result = DnsForwarderModule(make_context(host)).apply()

    assert result.outcome == Outcome.SKIPPED
    assert "install it first" in result.cause


def test_not_listening_is_service_unready(host, ctx, clock):
    host.on_start["mosdns-x"] = lambda: None

    result = DnsForwarderModule(ctx).apply()

    assert result.error_kind == "ServiceUnready"
    assert result.failure.phase == "ACTIVATE"
    assert clock.sleeps and set(clock.sleeps) == {2}


def test_revert_stops_service(host, ctx):
    module = DnsForwarderModule(ctx)
    module.apply()

    result = module.revert()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    assert not host.path("/etc/mosdns-x/config.yaml").exists()
    assert host.units["mosdns-x"] == {"active": False, "enabled": False}
    assert {p.key: p.value for p in result.probes}["dns_forwarder_listening"] == "no"


def test_revert_disables_while_unit_file_exists(host, ctx):
    module = DnsForwarderModule(ctx)
    module.apply()
    host.calls.clear()

    result = module.revert()

    assert result.outcome == Outcome.SUCCEEDED, result.failure
    disable = host.calls.index(["systemctl", "disable", "mosdns-x"])
    assert disable < host.calls.index(["systemctl", "daemon-reload"])
    assert not host.has_unit_file("mosdns-x")
    assert host.units["mosdns-x"]["enabled"] is False


def test_failed_disable_fails_revert(host, ctx):
    module = DnsForwarderModule(ctx)
    module.apply()
    host.fail("systemctl", "disable", "mosdns-x", stderr="Access denied")

    result = module.revert()

    assert result.outcome == Outcome.FAILED
    assert result.error_kind == "ActivationFailed"
    assert result.failure.phase == "DEACTIVATE"
    assert result.state == "REVERT_FAILED"
    assert host.path("/etc/systemd/system/mosdns-x.service").exists()
