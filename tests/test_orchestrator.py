"""Tests for the module registry and the orchestrator."""

import pytest

from hostrecon.modules import (
    MODULE_CLASSES,
    Module,
    NetworkModule,
    RegistryError,
    build_registry,
    validate_registry,
)
from hostrecon.protocol.record import RunRecord
from hostrecon.protocol.result import Mode, Outcome
from hostrecon.runner.orchestrator import INTERRUPTED, Orchestrator, SelectionError
from tests.mocks import make_context, make_host


@pytest.fixture
def orchestrator(ctx):
    return Orchestrator(ctx)


class TestRegistry:

    def test_fixed_order(self, ctx):
        assert list(build_registry(ctx)) == [
            "network", "zram", "time-sync", "ssh-security", "dns-forwarder",
        ]

    def test_duplicate_name_rejected(self):
        class Clash(Module):
            name = "network"
            files = ("/etc/clash.conf",)

        with pytest.raises(RegistryError):
            validate_registry(MODULE_CLASSES + [Clash])

    def test_shared_file_rejected(self):
        class Greedy(Module):
            name = "greedy"
            files = NetworkModule.files

        with pytest.raises(RegistryError, match="managed by both"):
            validate_registry(MODULE_CLASSES + [Greedy])


class TestSelection:

    def test_all(self, orchestrator):
        assert orchestrator.select("all") == orchestrator.module_names

    def test_single(self, orchestrator):
        assert orchestrator.select("zram") == ["zram"]

    def test_unknown(self, orchestrator):
        with pytest.raises(SelectionError, match="Available: network"):
            orchestrator.select("firewall")


class TestRun:

    def test_apply_all(self, host, ctx, orchestrator):
        report = orchestrator.run(Mode.APPLY, orchestrator.select("all"), handle_sigint=False)

        assert report.exit_code == 0, [r.failure for r in report.results]
        assert report.saved
        record = RunRecord.load(ctx.config.status_path)
        assert record.succeeded == orchestrator.module_names
        assert record.system_info.congestion_control == "bbr"
        assert record.system_info.ssh_port == "2222"
        assert "/etc/sysctl.conf" in record.touched_files

    def test_runs_in_registry_order(self, orchestrator):
        seen = []
        orchestrator.on_module_start(lambda name, mode: seen.append(name))

        orchestrator.run(Mode.STATUS, ["dns-forwarder", "network", "zram"], handle_sigint=False)

        assert seen == ["network", "zram", "dns-forwarder"]

    def test_failure_does_not_stop_run(self, host, ctx, orchestrator):
        host.fail("systemctl", "enable", "zramswap")

        report = orchestrator.run(Mode.APPLY, orchestrator.select("all"), handle_sigint=False)

        assert report.record.failed == ["zram"]
        assert report.record.succeeded == ["network", "time-sync", "ssh-security", "dns-forwarder"]
        assert report.exit_code == 1
        assert report.record.outcomes[1].error_kind == "ActivationFailed"

    def test_skipped_modules_do_not_fail_run(self, tmp_path):
        host = make_host(tmp_path / "root", bbr=False, dns_binary=False)
        orchestrator = Orchestrator(make_context(host))

        report = orchestrator.run(Mode.APPLY, orchestrator.select("all"), handle_sigint=False)

        assert report.record.skipped == ["network", "dns-forwarder"]
        assert report.exit_code == 0

    def test_interrupt_skips_remaining(self, ctx, orchestrator):
        orchestrator.on_module_done(lambda result: orchestrator.request_interrupt())

        report = orchestrator.run(Mode.APPLY, orchestrator.select("all"), handle_sigint=False)

        assert report.record.succeeded == ["network"]
        assert len(report.record.skipped) == 4
        assert all(r.notes == [INTERRUPTED] for r in report.results[1:])
        assert report.record.interrupted
        assert report.exit_code == 1
        assert RunRecord.load(ctx.config.status_path).interrupted

    def test_status_is_read_only(self, host, ctx, orchestrator):
        sysctl_conf = host.read("/etc/sysctl.conf")

        report = orchestrator.run(Mode.STATUS, orchestrator.select("all"), handle_sigint=False)

        assert not report.saved
        assert not ctx.config.status_path.exists()
        assert host.read("/etc/sysctl.conf") == sysctl_conf
        assert all(r.outcome == Outcome.SUCCEEDED for r in report.results)

    def test_revert_after_apply(self, host, orchestrator):
        names = orchestrator.select("all")
        orchestrator.run(Mode.APPLY, names, handle_sigint=False)

        report = orchestrator.run(Mode.REVERT, names, handle_sigint=False)

        assert report.exit_code == 0, [r.failure for r in report.results]
        assert all(r.state == "NOT_APPLIED" for r in report.results)
        assert report.record.system_info.congestion_control == "cubic"

    def test_unwritable_record_is_reported(self, ctx, orchestrator):
        ctx.config.state_dir.parent.mkdir(parents=True, exist_ok=True)
        ctx.config.state_dir.write_text("not a directory")

        report = orchestrator.run(Mode.APPLY, ["ssh-security"], handle_sigint=False)

        assert report.results[0].outcome == Outcome.SUCCEEDED, report.results[0].failure
        assert not report.saved
        assert isinstance(report.save_error, OSError)
        assert report.exit_code == 1

    def test_unexpected_exception_is_contained(self, ctx):
        class Broken(Module):
            name = "broken"

            def apply(self):
                raise RuntimeError("boom")

        orchestrator = Orchestrator(ctx, registry={"broken": Broken(ctx)})

        report = orchestrator.run(Mode.APPLY, ["broken"], handle_sigint=False)

        assert report.results[0].error_kind == "Unexpected"
        assert report.exit_code == 1


class TestInteractiveDefaults:

    def test_never_run(self, orchestrator):
        assert orchestrator.last_record() is None
        assert all(orchestrator.interactive_defaults(None).values())

    def test_succeeded_modules_default_to_skip(self, host, orchestrator):
        host.fail("systemctl", "enable", "zramswap")
        orchestrator.run(Mode.APPLY, orchestrator.select("all"), handle_sigint=False)

        defaults = orchestrator.interactive_defaults(orchestrator.last_record())

        assert defaults == {
            "network": False,
            "zram": True,
            "time-sync": False,
            "ssh-security": False,
            "dns-forwarder": False,
        }

    def test_earlier_runs_are_remembered(self, orchestrator):
        orchestrator.run(Mode.APPLY, ["network"], handle_sigint=False)
        orchestrator.run(Mode.APPLY, ["zram"], handle_sigint=False)

        defaults = orchestrator.interactive_defaults(orchestrator.last_record())
        assert defaults["network"] is False
        assert defaults["zram"] is False
        assert defaults["time-sync"] is True

        orchestrator.run(Mode.REVERT, ["network"], handle_sigint=False)

        defaults = orchestrator.interactive_defaults(orchestrator.last_record())
        assert defaults["network"] is True
        assert defaults["zram"] is False

    def test_unreadable_record(self, ctx, orchestrator):
        ctx.config.status_path.parent.mkdir(parents=True)
        ctx.config.status_path.write_text("{not json")
        assert orchestrator.last_record() is None
