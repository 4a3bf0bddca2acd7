"""
CommandRunner - Opaque external command execution.

Every collaborator outside the process (sysctl, systemctl, sshd,
package managers) is reached through this class, which only reports
an exit status plus captured stdout/stderr.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass
class CommandResult:
    """Outcome of one external command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr, stripped, for diagnostics."""
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)

    def tail(self, lines: int = 5) -> List[str]:
        return [l for l in self.output.splitlines() if l.strip()][-lines:]


@dataclass
class RunnerConfig:
    """Configuration for command execution."""
    timeout: int = 120  # seconds
    env: Dict[str, str] = field(default_factory=lambda: {
        "DEBIAN_FRONTEND": "noninteractive",
        "LC_ALL": "C",
    })


class CommandRunner:
    """
    Runs commands locally and captures their output.

    Never raises on a non-zero exit; a missing executable is reported as
    exit status 127 and a timeout as 124, mirroring the shell.
    """

    def __init__(self, config: Optional[RunnerConfig] = None):
        self.config = config or RunnerConfig()

    def run(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Run a command and capture its result."""
        argv = [str(a) for a in args]
        env = dict(os.environ)
        env.update(self.config.env)
        try:
            proc = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout or self.config.timeout,
                env=env,
            )
        except FileNotFoundError:
            return CommandResult(argv, 127, "", f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired as e:
            stdout = e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or "")
            return CommandResult(argv, 124, stdout, f"{argv[0]}: timed out")
        return CommandResult(argv, proc.returncode, proc.stdout or "", proc.stderr or "")

    def which(self, name: str) -> Optional[str]:
        """Locate an executable on PATH."""
        return shutil.which(name)
