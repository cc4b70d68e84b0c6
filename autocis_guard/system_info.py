import getpass
import os
import platform
import socket
import sys
import time
from datetime import datetime

import psutil


def format_bytes(num_bytes: float) -> str:
    """Format bytes to human readable format"""
    if num_bytes == 0:
        return "0 Bytes"
    for unit in ["Bytes", "KB", "MB", "GB"]:
        if num_bytes < 1024:
            return f"{round(num_bytes, 2):g} {unit}"
        num_bytes /= 1024
    return f"{round(num_bytes, 2):g} TB"


def format_uptime(seconds: float) -> str:
    """Format uptime to human readable format, e.g. '2d 3h 15m'"""
    seconds = int(seconds)
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    return " ".join(parts) or "0m"


def read_os_release(path: str = "/etc/os-release") -> dict:
    """Parse NAME/VERSION/ID style key=value pairs; empty dict when unreadable."""
    info = {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if "=" not in line:
                    continue
                key, value = line.strip().split("=", 1)
                info[key] = value.strip().strip('"')
    except OSError:
        pass
    return info


def detect_os() -> dict:
    """
    Detect the operating system name, version and distribution.

    Returns:
        dict: type, name, version, kernel, distro
    """
    os_type = platform.system()
    os_info = {
        "type": os_type,
        "name": os_type,
        "version": platform.version(),
        "kernel": platform.release(),
        "distro": "",
    }

    if os_type == "Linux":
        release = read_os_release()
        os_info["name"] = release.get("NAME", "Linux")
        os_info["version"] = release.get("VERSION", release.get("VERSION_ID", "Unknown"))
        os_info["distro"] = release.get("ID", "")
    elif os_type == "Darwin":
        os_info["name"] = "macOS"
        os_info["version"] = platform.mac_ver()[0] or platform.release()
    elif os_type == "Windows":
        os_info["name"] = "Windows"
        os_info["version"] = f"{platform.release()} ({platform.version()})"

    return os_info


def get_system_info() -> dict:
    """
    Get system information used in prompts and reports.

    Returns:
        dict: os, version, kernel, distro, hostname, user, platform, arch,
        cpus, total_memory, free_memory, uptime, timestamp
    """
    os_info = detect_os()
    memory = psutil.virtual_memory()

    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = os.getenv("USER", os.getenv("USERNAME", "unknown"))

    return {
        "os": os_info["name"],
        "version": os_info["version"] or "Unknown",
        "kernel": os_info["kernel"],
        "distro": os_info["distro"],
        "hostname": socket.gethostname(),
        "user": user,
        "platform": sys.platform,
        "arch": platform.machine(),
        "cpus": psutil.cpu_count(logical=True),
        "total_memory": format_bytes(memory.total),
        "free_memory": format_bytes(memory.available),
        "uptime": format_uptime(time.time() - psutil.boot_time()),
        "timestamp": datetime.now().isoformat(),
    }


def check_privileges() -> bool:
    """True when running as root, or as an elevated Windows user."""
    if hasattr(os, "geteuid"):
        return os.geteuid() == 0
    try:
        import ctypes
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False
