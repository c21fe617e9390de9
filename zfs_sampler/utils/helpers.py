# zfs_sampler/utils/helpers.py - Helper functions
"""
General utility and helper functions.
"""

import os
import socket
import stat
from typing import Optional
import subprocess
import logging


logger = logging.getLogger(__name__)

ZFS_MODULE_PATH = '/sys/module/zfs'


def check_root_privileges() -> bool:
    """
    Check if running with root privileges.

    Returns:
        True if running as root, False otherwise
    """
    return os.geteuid() == 0 if hasattr(os, 'geteuid') else False


def check_bcc_installed() -> bool:
    """
    Check if BCC is installed and available.

    Returns:
        True if BCC is available, False otherwise
    """
    try:
        import bcc  # noqa: F401
        return True
    except ImportError:
        return False


def check_kernel_version() -> tuple:
    """
    Get Linux kernel version.

    Returns:
        Tuple of (major, minor, patch) version numbers
    """
    try:
        result = subprocess.run(
            ['uname', '-r'],
            capture_output=True,
            text=True,
            check=True
        )

        version_str = result.stdout.strip().split('-')[0]
        parts = version_str.split('.')

        major = int(parts[0]) if len(parts) > 0 else 0
        minor = int(parts[1]) if len(parts) > 1 else 0
        patch = int(parts[2]) if len(parts) > 2 else 0

        return (major, minor, patch)

    except (OSError, subprocess.CalledProcessError, ValueError) as e:
        logger.error(f"Failed to get kernel version: {e}")
        return (0, 0, 0)


def check_ebpf_support() -> bool:
    """
    Check if the kernel supports eBPF.

    Returns:
        True if eBPF is supported, False otherwise
    """
    major, minor, _ = check_kernel_version()

    # BCC kprobes with bpf_probe_read_kernel need 5.5+
    if major < 5 or (major == 5 and minor < 5):
        logger.warning(f"Kernel version {major}.{minor} may not support the ZFS tracer (5.5+ required)")
        return False

    return True


def check_zfs_loaded(module_path: str = ZFS_MODULE_PATH) -> bool:
    """
    Check that the ZFS kernel module is loaded.
    """
    return os.path.isdir(module_path)


def check_socket(path: str) -> bool:
    """
    Check that a UNIX socket exists at path.

    Args:
        path: Socket path (e.g. collectd's unixsock plugin socket)

    Returns:
        True if path exists and is a socket
    """
    try:
        return stat.S_ISSOCK(os.stat(path).st_mode)
    except OSError:
        return False


def get_node_name() -> str:
    """Local host name, used as the collectd host part."""
    return socket.gethostname()


def parse_guid(text: str) -> int:
    """
    Parse a GUID given as decimal or 0x-prefixed hex.

    Raises:
        ValueError: if text is not an integer literal
    """
    return int(text.strip(), 0)


def format_bytes(bytes_count: float) -> str:
    """
    Format bytes into human-readable string.

    Args:
        bytes_count: Number of bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0

    return f"{bytes_count:.1f} PB"


def check_prerequisites(socket_path: Optional[str] = None, require_capture: bool = True) -> bool:
    """
    Check all prerequisites for running the sampler.

    Args:
        socket_path: collectd socket to verify, or None when not publishing to it
        require_capture: Whether the kernel capture source will be used

    Returns:
        True if all prerequisites are met, False otherwise
    """
    checks = []
    if require_capture:
        checks += [
            ("Root privileges", check_root_privileges()),
            ("BCC installed", check_bcc_installed()),
            ("eBPF support", check_ebpf_support()),
            ("ZFS module loaded", check_zfs_loaded()),
        ]
    if socket_path:
        checks.append((f"collectd socket {socket_path}", check_socket(socket_path)))

    all_passed = True

    print("Checking prerequisites...")
    for name, passed in checks:
        status = "✓" if passed else "✗"
        print(f"  {status} {name}")

        if not passed:
            all_passed = False

    return all_passed
