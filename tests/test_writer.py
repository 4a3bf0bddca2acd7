"""Tests for marker-block writes."""

import os
import stat

import pytest

from hostrecon.host.writer import ConfigWriter, markers, render, strip_block
from hostrecon.protocol.errors import WriteFailed


START, END = markers("Demo")


def test_render_appends_block_to_empty_file():
    assert render("", "Demo", "a = 1") == f"{START}\na = 1\n{END}\n"


def test_render_preserves_content_outside_markers():
    existing = "user line\n"
    out = render(existing, "Demo", "a = 1")
    assert out.startswith("user line\n")
    assert out.endswith(f"{START}\na = 1\n{END}\n")


def test_render_adds_newline_when_file_lacks_one():
    assert render("no newline", "Demo", "x").startswith("no newline\n# === Demo Start ===")


def test_render_is_idempotent():
    once = render("keep\n", "Demo", "a = 1")
    assert render(once, "Demo", "a = 1") == once


def test_render_replaces_all_existing_blocks():
    existing = f"top\n{START}\nold\n{END}\nmiddle\n{START}\nolder\n{END}\n"
    out = render(existing, "Demo", "new")
    assert out.count(START) == 1
    assert "old" not in out and "older" not in out
    assert out == f"top\nmiddle\n{START}\nnew\n{END}\n"


def test_render_empty_body_removes_block():
    existing = f"keep\n{START}\nold\n{END}\n"
    assert render(existing, "Demo", "") == "keep\n"


def test_other_blocks_untouched():
    other_start, other_end = markers("Other")
    existing = f"{other_start}\nz\n{other_end}\n"
    out = render(existing, "Demo", "a")
    assert out.startswith(existing)


def test_unterminated_marker_fails():
    with pytest.raises(WriteFailed):
        strip_block(f"keep\n{START}\ndangling\n", "Demo")


def test_strip_block_consumes_crlf_after_end_marker():
    existing = f"top\r\n{START}\r\nold\r\n{END}\r\nbottom\r\n"
    assert strip_block(existing, "Demo") == "top\r\nbottom\r\n"


class TestConfigWriter:

    def test_write_block_creates_file(self, tmp_path):
        writer = ConfigWriter(tmp_path)
        assert writer.write_block("/etc/demo.conf", "Demo", "a = 1") is True
        target = tmp_path / "etc/demo.conf"
        assert target.read_text() == f"{START}\na = 1\n{END}\n"
        assert stat.S_IMODE(target.stat().st_mode) == 0o644

    def test_second_write_reports_unchanged(self, tmp_path):
        writer = ConfigWriter(tmp_path)
        writer.write_block("/etc/demo.conf", "Demo", "a = 1")
        assert writer.write_block("/etc/demo.conf", "Demo", "a = 1") is False

    def test_write_keeps_mode_bits(self, tmp_path):
        target = tmp_path / "etc/secret.conf"
        target.parent.mkdir(parents=True)
        target.write_text("x\n")
        os.chmod(target, 0o600)

        ConfigWriter(tmp_path).write_block("/etc/secret.conf", "Demo", "a")

        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_is_current_and_has_block(self, tmp_path):
        writer = ConfigWriter(tmp_path)
        assert not writer.is_current("/etc/demo.conf", "Demo", "a")
        writer.write_block("/etc/demo.conf", "Demo", "a")
        assert writer.has_block("/etc/demo.conf", "Demo")
        assert writer.is_current("/etc/demo.conf", "Demo", "a")
        assert not writer.is_current("/etc/demo.conf", "Demo", "b")

    def test_unterminated_marker_leaves_file_alone(self, tmp_path):
        target = tmp_path / "etc/demo.conf"
        target.parent.mkdir(parents=True)
        broken = f"keep\n{START}\nhalf\n"
        target.write_text(broken)

        with pytest.raises(WriteFailed):
            ConfigWriter(tmp_path).write_block("/etc/demo.conf", "Demo", "a")

        assert target.read_text() == broken

    def test_no_temp_files_left_behind(self, tmp_path):
        writer = ConfigWriter(tmp_path)
        writer.write_block("/etc/demo.conf", "Demo", "a")
        assert [p.name for p in (tmp_path / "etc").iterdir()] == ["demo.conf"]

    def test_crlf_outside_block_is_kept(self, tmp_path):
        target = tmp_path / "etc/demo.conf"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"user line\r\nother\r\n")
        writer = ConfigWriter(tmp_path)

        writer.write_block("/etc/demo.conf", "Demo", "a = 1")
        assert target.read_bytes() == b"user line\r\nother\r\n" + f"{START}\na = 1\n{END}\n".encode()

        writer.write_block("/etc/demo.conf", "Demo", "")
        assert target.read_bytes() == b"user line\r\nother\r\n"

    def test_non_utf8_bytes_survive(self, tmp_path):
        target = tmp_path / "etc/security/limits.conf"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"# caf\xe9\n* soft nofile 1024\n")
        writer = ConfigWriter(tmp_path)

        assert writer.write_block("/etc/security/limits.conf", "Demo", "a") is True
        assert writer.has_block("/etc/security/limits.conf", "Demo")

        data = target.read_bytes()
        assert data.startswith(b"# caf\xe9\n* soft nofile 1024\n")
        assert data.endswith(f"{START}\na\n{END}\n".encode())
