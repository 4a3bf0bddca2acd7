"""
ConfigWriter - Idempotent marker-block writes.

A managed block looks like:

    # === <name> Start ===
    <body>
    # === <name> End ===

Writing a block removes every existing copy of it and appends one fresh
copy; content outside the markers is preserved byte for byte.
"""

import os
import stat
import tempfile
from pathlib import Path
from typing import Tuple, Union

from ..protocol.errors import WriteFailed
from .paths import host_path

DEFAULT_MODE = 0o644

# Undecodable bytes round-trip as surrogates; newlines are never translated
ENCODING = "utf-8"
ERRORS = "surrogateescape"


def markers(name: str) -> Tuple[str, str]:
    """Start and end marker lines for a block name."""
    return f"# === {name} Start ===", f"# === {name} End ==="


def strip_block(existing: str, name: str) -> str:
    """Remove every copy of a marker block, markers included."""
    start, end = markers(name)
    content = existing

    while True:
        begin = content.find(start)
        if begin == -1:
            return content
        finish = content.find(end, begin + len(start))
        if finish == -1:
            raise WriteFailed(f"Unterminated marker block '{name}': missing '{end}'")
        finish += len(end)
        for newline in ("\r\n", "\n"):
            if content.startswith(newline, finish):
                finish += len(newline)
                break
        content = content[:begin] + content[finish:]


def render(existing: str, name: str, body: str) -> str:
    """Build the new file content for a block write. Empty body removes the block."""
    content = strip_block(existing, name)
    body = body.strip("\n")
    if not body:
        return content

    start, end = markers(name)
    if content and not content.endswith("\n"):
        content += "\n"
    return f"{content}{start}\n{body}\n{end}\n"


class ConfigWriter:
    """Writes marker blocks into files under the host root."""

    def __init__(self, root: Union[str, Path] = "/"):
        self.root = Path(root)

    def read(self, path: str) -> str:
        live = host_path(self.root, path)
        try:
            with open(live, encoding=ENCODING, errors=ERRORS, newline="") as f:
                return f.read()
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise WriteFailed(f"Cannot read {path}: {e}") from e

    def has_block(self, path: str, name: str) -> bool:
        start, _ = markers(name)
        return start in self.read(path)

    def is_current(self, path: str, name: str, body: str) -> bool:
        """True if the file already holds exactly this block and nothing would change."""
        if not host_path(self.root, path).exists():
            return False
        existing = self.read(path)
        try:
            return render(existing, name, body) == existing
        except WriteFailed:
            return False

    def write_block(self, path: str, name: str, body: str) -> bool:
        """
        Replace the named block in `path` with `body`.

        Returns:
            True if the file content changed
        """
        live = host_path(self.root, path)
        existing = self.read(path)
        content = render(existing, name, body)

        if live.exists() and content == existing:
            return False

        self._atomic_write(live, content)
        return True

    def _atomic_write(self, live: Path, content: str) -> None:
        try:
            mode = stat.S_IMODE(live.stat().st_mode) if live.exists() else DEFAULT_MODE
            live.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(live.parent), prefix=f".{live.name}.")
            try:
                with os.fdopen(fd, "w", encoding=ENCODING, errors=ERRORS, newline="") as f:
                    f.write(content)
                os.chmod(tmp, mode)
                os.replace(tmp, live)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise WriteFailed(f"Cannot write {live}: {e}") from e
