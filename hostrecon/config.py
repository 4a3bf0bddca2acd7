"""
Configuration management for hostrecon.

Supports:
- TOML config files
- Command-line overrides
- Sensible defaults

Priority (highest to lowest):
1. Command-line arguments
2. Config file
3. Defaults
"""

import re
import tomllib
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Optional, Dict, Any, List, Union, get_args, get_origin

from .host.paths import host_path
from .host.probe import ProbeConfig
from .host.service import ServiceConfig


# Default config file locations (searched in order)
CONFIG_SEARCH_PATHS = [
    Path("/etc/hostrecon/config.toml"),
    Path.home() / ".config" / "hostrecon" / "config.toml",
]

PASSWORD_AUTH_CHOICES = ("auto", "yes", "no")
PERMIT_ROOT_CHOICES = ("yes", "no", "prohibit-password", "forced-commands-only")
MAX_ZRAM_PERCENT = 400
TIMEZONE_PATTERN = re.compile(r"^[A-Za-z0-9_+-]+(/[A-Za-z0-9_+-]+)*$")


@dataclass
class HostConfig:
    """Which filesystem tree is the host."""
    root: str = "/"


@dataclass
class StateConfig:
    """Where run records and runtime snapshots live (host paths)."""
    dir: str = "/var/lib/hostrecon"
    status_file: str = "status.json"


@dataclass
class NetworkConfig:
    """Network optimisation module."""
    mptcp: bool = True
    apply_qdisc: bool = True
    nofile: int = 1048576


@dataclass
class ZramConfig:
    """Compressed swap module."""
    algorithm: str = "zstd"
    percent: Optional[int] = None  # None: sized from installed memory
    priority: int = 100
    swappiness: int = 10
    max_wait: int = 30


@dataclass
class TimeSyncConfig:
    """Time synchronisation module."""
    pools: List[str] = field(default_factory=lambda: ["pool.ntp.org"])
    makestep: str = "1.0 3"
    timezone: Optional[str] = None  # None: leave the host timezone alone
    max_wait: int = 30


@dataclass
class SshConfig:
    """SSH hardening module."""
    port: int = 2222
    permit_root_login: str = "prohibit-password"
    password_authentication: str = "auto"


@dataclass
class DnsConfig:
    """DNS forwarder module."""
    binary: str = "/usr/local/bin/mosdns-x"
    listen: str = "127.0.0.1:5533"
    upstreams: List[str] = field(default_factory=lambda: [
        "tls://1.1.1.1",
        "tls://8.8.8.8",
        "tls://9.9.9.9",
    ])
    log_level: str = "info"
    max_wait: int = 30


SECTIONS = {
    "host": HostConfig,
    "state": StateConfig,
    "service": ServiceConfig,
    "network": NetworkConfig,
    "zram": ZramConfig,
    "time_sync": TimeSyncConfig,
    "ssh": SshConfig,
    "dns": DnsConfig,
}


class ConfigError(ValueError):
    """Configuration file could not be used."""


def _is_instance(value: Any, annotation: Any) -> bool:
    """isinstance() for the field annotations used by the config sections."""
    origin = get_origin(annotation)
    if origin is Union:
        return any(_is_instance(value, arg) for arg in get_args(annotation))
    if origin is list:
        (item,) = get_args(annotation)
        return isinstance(value, list) and all(_is_instance(v, item) for v in value)
    if annotation is type(None):
        return value is None
    # TOML booleans are not numbers
    if annotation in (int, float) and isinstance(value, bool):
        return False
    if annotation is float:
        return isinstance(value, (int, float))
    return isinstance(value, annotation)


def _type_name(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin is Union:
        return " or ".join(_type_name(a) for a in get_args(annotation) if a is not type(None))
    if origin is list:
        return f"a list of {get_args(annotation)[0].__name__}"
    return {bool: "true/false", int: "an integer", float: "a number", str: "a string"}.get(
        annotation, annotation.__name__
    )


@dataclass
class Config:
    """Main configuration container."""
    host: HostConfig = field(default_factory=HostConfig)
    state: StateConfig = field(default_factory=StateConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    zram: ZramConfig = field(default_factory=ZramConfig)
    time_sync: TimeSyncConfig = field(default_factory=TimeSyncConfig)
    ssh: SshConfig = field(default_factory=SshConfig)
    dns: DnsConfig = field(default_factory=DnsConfig)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load configuration from file.

        Args:
            config_path: Explicit path to config file. If None, searches default locations.

        Returns:
            Config instance with loaded values
        """
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            path = cls._find_config_file()

        if not path:
            return cls()

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e

        return cls._from_dict(data)

    @classmethod
    def _find_config_file(cls) -> Optional[Path]:
        """Find config file in default locations."""
        for path in CONFIG_SEARCH_PATHS:
            if path.exists():
                return path
        return None

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary. Unknown sections or keys are errors."""
        config = cls()

        for section, values in data.items():
            key = section.replace("-", "_")
            if key not in SECTIONS or not isinstance(values, dict):
                raise ConfigError(f"Unknown config section: [{section}]")

            section_cls = SECTIONS[key]
            known = {f.name for f in fields(section_cls)}
            unknown = set(values) - known
            if unknown:
                raise ConfigError(f"Unknown keys in [{section}]: {', '.join(sorted(unknown))}")
            for f in fields(section_cls):
                if f.name in values and not _is_instance(values[f.name], f.type):
                    raise ConfigError(
                        f"[{section}] {f.name} must be {_type_name(f.type)}, "
                        f"got {type(values[f.name]).__name__}"
                    )

            current = getattr(config, key)
            merged = {f.name: getattr(current, f.name) for f in fields(section_cls)}
            merged.update(values)
            setattr(config, key, section_cls(**merged))

        return config

    def override_from_args(self, args) -> "Config":
        """
        Override config values from argparse namespace.

        Args with value None are ignored (keeping config file values).
        """
        if getattr(args, "root", None):
            self.host.root = args.root
        return self

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not Path(self.host.root).is_absolute():
            errors.append(f"Host root must be an absolute path: {self.host.root}")
        if not Path(self.state.dir).is_absolute():
            errors.append(f"State dir must be an absolute path: {self.state.dir}")

        if not 1024 <= self.ssh.port <= 65535:
            errors.append(f"SSH port must be between 1024 and 65535: {self.ssh.port}")
        if self.ssh.password_authentication not in PASSWORD_AUTH_CHOICES:
            errors.append(
                f"ssh.password_authentication must be one of {', '.join(PASSWORD_AUTH_CHOICES)}"
            )
        if self.ssh.permit_root_login not in PERMIT_ROOT_CHOICES:
            errors.append(
                f"ssh.permit_root_login must be one of {', '.join(PERMIT_ROOT_CHOICES)}"
            )

        if self.zram.percent is not None and not 1 <= self.zram.percent <= MAX_ZRAM_PERCENT:
            errors.append(f"zram.percent must be between 1 and {MAX_ZRAM_PERCENT}")
        if self.time_sync.timezone is not None and not TIMEZONE_PATTERN.match(self.time_sync.timezone):
            errors.append(f"time_sync.timezone is not a zone name: {self.time_sync.timezone}")
        if not self.dns.upstreams:
            errors.append("dns.upstreams must not be empty")
        if ":" not in self.dns.listen:
            errors.append(f"dns.listen must be host:port: {self.dns.listen}")
        if self.service.probe_interval <= 0:
            errors.append("service.probe_interval must be positive")

        return errors

    # =========================================================================
    # Derived paths
    # =========================================================================

    @property
    def root(self) -> Path:
        return Path(self.host.root)

    @property
    def state_dir(self) -> Path:
        """State directory resolved under the host root."""
        return host_path(self.root, self.state.dir)

    @property
    def status_path(self) -> Path:
        return self.state_dir / self.state.status_file

    def probe_config(self) -> ProbeConfig:
        return ProbeConfig(
            root=self.root,
            dns_binary=self.dns.binary,
            dns_listen=self.dns.listen,
        )

