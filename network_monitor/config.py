"""Configuration management for network monitor.

Two kinds of configuration live here: the YAML settings file that sizes the
pipeline, and the line-oriented rule files (watchlist, descriptions) read by
the classification engine.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

APP_NAME = "network-monitor"


class ConfigError(ValueError):
    """Raised when a settings file cannot be interpreted."""


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a settings section; an empty section yields defaults."""
    value = data[name]
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return value


@dataclass
class CaptureConfig:
    """Capture configuration."""
    interface: str = ""
    bpf_filter: str = ""
    duration: int = 0  # 0 = continuous
    snaplen: int = 65535
    promiscuous: bool = True
    batch_size: int = 10
    batch_timeout: float = 0.1  # seconds


@dataclass
class AttributionConfig:
    """Process attribution configuration."""
    enabled: bool = False
    cache_ttl_ms: int = 500
    proc_root: str = "/proc"


@dataclass
class WatchlistConfig:
    """Watchlist and alert configuration."""
    path: str = ""  # empty = <config dir>/watchlist.txt
    log_file: str = ""  # empty = no alert log
    max_alerts: int = 100


@dataclass
class DescriptionsConfig:
    """Traffic description database configuration."""
    path: str = ""  # empty = <config dir>/descriptions.txt
    install_default: bool = True


@dataclass
class StoreConfig:
    """Packet store configuration."""
    max_packets: int = 10000
    history_length: int = 60


@dataclass
class DashboardConfig:
    """Dashboard configuration."""
    refresh_rate: float = 0.5  # seconds
    visible_packets: int = 20


@dataclass
class MonitorConfig:
    """Main configuration container."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    attribution: AttributionConfig = field(default_factory=AttributionConfig)
    watchlist: WatchlistConfig = field(default_factory=WatchlistConfig)
    descriptions: DescriptionsConfig = field(default_factory=DescriptionsConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        """Create config from dictionary."""
        config = cls()

        if "capture" in data:
            cap = _section(data, "capture")
            config.capture = CaptureConfig(
                interface=cap.get("interface", ""),
                bpf_filter=cap.get("bpf_filter", ""),
                duration=cap.get("duration", 0),
                snaplen=cap.get("snaplen", 65535),
                promiscuous=cap.get("promiscuous", True),
                batch_size=cap.get("batch_size", 10),
                batch_timeout=cap.get("batch_timeout", 0.1),
            )

        if "attribution" in data:
            attr = _section(data, "attribution")
            config.attribution = AttributionConfig(
                enabled=attr.get("enabled", False),
                cache_ttl_ms=attr.get("cache_ttl_ms", 500),
                proc_root=attr.get("proc_root", "/proc"),
            )

        if "watchlist" in data:
            wl = _section(data, "watchlist")
            config.watchlist = WatchlistConfig(
                path=wl.get("path", ""),
                log_file=wl.get("log_file", ""),
                max_alerts=wl.get("max_alerts", 100),
            )

        if "descriptions" in data:
            desc = _section(data, "descriptions")
            config.descriptions = DescriptionsConfig(
                path=desc.get("path", ""),
                install_default=desc.get("install_default", True),
            )

        if "store" in data:
            store = _section(data, "store")
            config.store = StoreConfig(
                max_packets=store.get("max_packets", 10000),
                history_length=store.get("history_length", 60),
            )

        if "dashboard" in data:
            dash = _section(data, "dashboard")
            config.dashboard = DashboardConfig(
                refresh_rate=dash.get("refresh_rate", 0.5),
                visible_packets=dash.get("visible_packets", 20),
            )

        return config

    @classmethod
    def from_yaml(cls, path: str) -> "MonitorConfig":
        """Load config from YAML file."""
        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        return cls.from_dict(data or {})

    @classmethod
    def load(cls, path: Optional[str] = None) -> "MonitorConfig":
        """Load config from file or use defaults."""
        search_paths = [
            path,
            "config.yaml",
            "config.yml",
            get_config_path("config.yaml"),
            f"/etc/{APP_NAME}/config.yaml",
        ]

        for config_path in search_paths:
            if config_path and os.path.exists(config_path):
                logger.info("Loading settings from %s", config_path)
                return cls.from_yaml(config_path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "capture": {
                "interface": self.capture.interface,
                "bpf_filter": self.capture.bpf_filter,
                "duration": self.capture.duration,
                "snaplen": self.capture.snaplen,
                "promiscuous": self.capture.promiscuous,
                "batch_size": self.capture.batch_size,
                "batch_timeout": self.capture.batch_timeout,
            },
            "attribution": {
                "enabled": self.attribution.enabled,
                "cache_ttl_ms": self.attribution.cache_ttl_ms,
                "proc_root": self.attribution.proc_root,
            },
            "watchlist": {
                "path": self.watchlist.path,
                "log_file": self.watchlist.log_file,
                "max_alerts": self.watchlist.max_alerts,
            },
            "descriptions": {
                "path": self.descriptions.path,
                "install_default": self.descriptions.install_default,
            },
            "store": {
                "max_packets": self.store.max_packets,
                "history_length": self.store.history_length,
            },
            "dashboard": {
                "refresh_rate": self.dashboard.refresh_rate,
                "visible_packets": self.dashboard.visible_packets,
            },
        }

    def save_yaml(self, path: str) -> None:
        """Save config to YAML file."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)


# ---------------------------------------------------------------------------
# Config directory and rule files

def get_config_dir() -> str:
    """$XDG_CONFIG_HOME/network-monitor, else ~/.config/network-monitor."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return os.path.join(xdg, APP_NAME)
    return os.path.join(os.path.expanduser("~"), ".config", APP_NAME)


def ensure_config_dir() -> bool:
    try:
        Path(get_config_dir()).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Cannot create config directory: %s", e)
        return False
    return True


def get_config_path(filename: str) -> str:
    return os.path.join(get_config_dir(), filename)


def get_data_dir() -> str:
    """Directory holding the bundled default rule files."""
    return str(Path(__file__).parent / "data")


def install_default_config(filename: str) -> bool:
    """Copy a bundled file into the config directory unless already there."""
    dest = get_config_path(filename)
    if os.path.exists(dest):
        return True

    src = os.path.join(get_data_dir(), filename)
    if not os.path.exists(src) or not ensure_config_dir():
        return False

    try:
        shutil.copyfile(src, dest)
    except OSError as e:
        logger.warning("Cannot install default %s: %s", filename, e)
        return False
    logger.info("Installed default %s to %s", filename, dest)
    return True


def read_config_lines(filepath: str) -> List[str]:
    """
    Read a rule file, dropping blank lines and # comments.

    Returns an empty list if the file does not exist or cannot be read.
    """
    try:
        with open(filepath, "r", encoding="utf-8", errors="replace") as f:
            raw = f.readlines()
    except OSError:
        return []

    lines = []
    for line in raw:
        line = line.strip()
        if line and not line.startswith("#"):
            lines.append(line)
    return lines


def parse_fields(line: str, delimiter: str = ":") -> List[str]:
    """
    Split on delimiter; a backslash before the delimiter makes it literal.

    Any other backslash is kept as-is so regex escapes such as \\. survive.
    """
    fields = []
    current = []
    escaped = False

    for ch in line:
        if escaped:
            if ch != delimiter:
                current.append("\\")
            current.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == delimiter:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)

    if escaped:
        current.append("\\")
    fields.append("".join(current))
    return fields
