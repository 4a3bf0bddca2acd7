"""
BackupStore - File backups for managed files.

Two backups per managed file P:
- P.original: first-ever copy, never overwritten
- P.backup: copy taken before every apply

RuntimeSnapshot keeps the pre-change values of kernel runtime
parameters so revert can put them back with `sysctl -w`.
"""

import json
import os
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..protocol.errors import BackupFailed, NoBackupFound, WriteFailed
from .paths import host_path

ORIGINAL_SUFFIX = ".original"
BACKUP_SUFFIX = ".backup"
ABSENT_SUFFIX = ".absent"


class BackupKind(str, Enum):
    """Which backup to restore from."""
    ORIGINAL = "original"
    LAST_BACKUP = "backup"


def _with_suffix(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


class BackupStore:
    """
    Creates and restores backups of managed files.

    Paths passed in are absolute host paths; they are resolved under
    `root` before touching the filesystem.
    """

    def __init__(self, root: Union[str, Path] = "/"):
        self.root = Path(root)

    def _live(self, path: str) -> Path:
        return host_path(self.root, path)

    def backup_path(self, path: str, which: BackupKind) -> Path:
        suffix = ORIGINAL_SUFFIX if which == BackupKind.ORIGINAL else BACKUP_SUFFIX
        return _with_suffix(self._live(path), suffix)

    def has_backup(self, path: str, which: BackupKind = BackupKind.ORIGINAL) -> bool:
        return self.backup_path(path, which).exists()

    def original_was_absent(self, path: str) -> bool:
        """True if `path` did not exist when its original backup was taken."""
        original = self.backup_path(path, BackupKind.ORIGINAL)
        return _with_suffix(original, ABSENT_SUFFIX).exists()

    def backup(self, path: str) -> List[str]:
        """
        Back up a managed file before mutating it.

        Creates the live file empty if absent, the original backup only
        if it does not exist yet, and always refreshes the last backup.

        Returns:
            Host paths of the backup files written
        """
        live = self._live(path)
        original = self.backup_path(path, BackupKind.ORIGINAL)
        last = self.backup_path(path, BackupKind.LAST_BACKUP)
        written = []

        try:
            existed = live.exists()
            if not existed:
                live.parent.mkdir(parents=True, exist_ok=True)
                live.touch()

            if not original.exists():
                shutil.copy2(live, original)
                if not existed:
                    _with_suffix(original, ABSENT_SUFFIX).touch()
                written.append(path + ORIGINAL_SUFFIX)

            shutil.copy2(live, last)
            written.append(path + BACKUP_SUFFIX)
        except OSError as e:
            raise BackupFailed(f"Cannot back up {path}: {e}") from e

        return written

    def restore(self, path: str, which: BackupKind = BackupKind.ORIGINAL) -> None:
        """
        Replace the live file with one of its backups.

        Restoring an original that was recorded as absent removes the
        live file instead.
        """
        live = self._live(path)
        source = self.backup_path(path, which)

        if not source.exists():
            raise NoBackupFound(f"No {which.value} backup for {path}")

        try:
            if which == BackupKind.ORIGINAL and self.original_was_absent(path):
                live.unlink(missing_ok=True)
                return
            _atomic_copy(source, live)
        except OSError as e:
            raise WriteFailed(f"Cannot restore {path} from {source.name}: {e}") from e


def _atomic_copy(source: Path, dest: Path) -> None:
    """Copy bytes and mode bits over dest via temp file + rename."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(dest.parent), prefix=f".{dest.name}.")
    os.close(fd)
    try:
        shutil.copy2(source, tmp)
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class RuntimeSnapshot:
    """
    Once-only record of kernel runtime values before a module first changed them.

    Stored as <state_dir>/runtime/<module>.json.
    """

    def __init__(self, state_dir: Path):
        self.directory = Path(state_dir) / "runtime"

    def path_for(self, module: str) -> Path:
        return self.directory / f"{module}.json"

    def exists(self, module: str) -> bool:
        return self.path_for(module).exists()

    def capture_once(self, module: str, values: Dict[str, Optional[str]]) -> bool:
        """
        Save values unless a snapshot for this module already exists.

        Keys whose value is None (not present on this kernel) are dropped.

        Returns:
            True if a new snapshot was written
        """
        path = self.path_for(module)
        if path.exists():
            return False

        data = {k: v for k, v in values.items() if v is not None}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self.directory), prefix=f".{path.name}.")
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp, path)
        except OSError as e:
            raise BackupFailed(f"Cannot save runtime snapshot for {module}: {e}") from e
        return True

    def load(self, module: str) -> Optional[Dict[str, str]]:
        """Load a module's snapshot. None if it was never captured."""
        path = self.path_for(module)
        if not path.exists():
            return None
        with open(path) as f:
            return json.load(f)
