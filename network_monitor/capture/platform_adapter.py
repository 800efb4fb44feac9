"""Platform-specific capture and attribution support."""

import os
import platform
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict


@dataclass
class PlatformConfig:
    """Platform-specific capture configuration."""
    promiscuous: bool = True


class PlatformAdapter(ABC):
    """Abstract base for platform-specific capture setup."""

    @abstractmethod
    def check_privileges(self) -> bool:
        """Check if running with sufficient privileges for packet capture."""

    @abstractmethod
    def supports_process_attribution(self) -> bool:
        """Whether sockets can be mapped back to the owning process."""

    def get_capture_config(self) -> PlatformConfig:
        return PlatformConfig()

    def get_platform_info(self) -> Dict[str, str]:
        """Get platform information."""
        return {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "python_version": platform.python_version(),
        }


class LinuxAdapter(PlatformAdapter):
    """Linux: raw sockets for capture, /proc for attribution."""

    def __init__(self, proc_root: str = "/proc"):
        self.proc_root = proc_root

    def check_privileges(self) -> bool:
        """Check for root or CAP_NET_RAW capability."""
        if os.geteuid() == 0:
            return True
        return self._has_cap_net_raw()

    def _has_cap_net_raw(self) -> bool:
        """Check for CAP_NET_RAW capability on Python executable."""
        try:
            result = subprocess.run(
                ["getcap", sys.executable],
                capture_output=True,
                text=True,
                timeout=5,
            )
            return "cap_net_raw" in result.stdout.lower()
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

    def supports_process_attribution(self) -> bool:
        return os.access(os.path.join(self.proc_root, "net", "tcp"), os.R_OK)


class MacOSAdapter(PlatformAdapter):
    """macOS: BPF devices for capture, no attribution."""

    def check_privileges(self) -> bool:
        """Check for root or BPF access."""
        if os.geteuid() == 0:
            return True
        for i in range(10):
            bpf_path = f"/dev/bpf{i}"
            if os.path.exists(bpf_path) and os.access(bpf_path, os.R_OK):
                return True
        return False

    def supports_process_attribution(self) -> bool:
        return False


class WindowsAdapter(PlatformAdapter):
    """Windows: Npcap for capture, no attribution."""

    def check_privileges(self) -> bool:
        """Check for administrator rights."""
        try:
            import ctypes
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False

    def supports_process_attribution(self) -> bool:
        return False


def get_platform_adapter(proc_root: str = "/proc") -> PlatformAdapter:
    """Factory function to get the appropriate platform adapter."""
    system = platform.system().lower()
    if system == "linux":
        return LinuxAdapter(proc_root)
    elif system == "darwin":
        return MacOSAdapter()
    elif system == "windows":
        return WindowsAdapter()
    else:
        raise RuntimeError(f"Unsupported platform: {system}")
