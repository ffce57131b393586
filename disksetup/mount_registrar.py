"""Persistent systemd mount units for ephemeral storage."""

import logging
import os
import posixpath
import string
from typing import Callable, List, Optional

import psutil

from .errors import CommandError, MountError
from .models import MountTarget
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


# Characters systemd leaves unescaped in unit names
_UNIT_NAME_SAFE = set(string.ascii_letters + string.digits + ':_.')


def escape_unit_name(path: str, suffix: str = "mount") -> str:
    """
    Convert a path into its systemd unit name, like systemd-escape --path.

    '/mnt/k8s-disks/0' becomes 'mnt-k8s\\x2ddisks-0.mount'.
    """
    normalized = posixpath.normpath('/' + path).strip('/')
    if not normalized:
        return f"-.{suffix}"

    escaped = []
    for index, char in enumerate(normalized):
        if char == '/':
            escaped.append('-')
        elif char in _UNIT_NAME_SAFE and not (index == 0 and char == '.'):
            escaped.append(char)
        else:
            escaped.extend(f"\\x{byte:02x}" for byte in char.encode('utf-8'))

    return f"{''.join(escaped)}.{suffix}"


def render_mount_unit(target: MountTarget) -> str:
    """
    Render the unit file for a mount target.

    Args:
        target: Source, destination, filesystem type and options

    Returns:
        systemd mount unit file content
    """
    description = target.description or f"Mount {target.source} at {target.destination}"

    unit_section = [f"Description={description}"]
    if target.is_bind:
        # The bind source lives on the array mount, which must come up first
        unit_section.append(f"RequiresMountsFor={target.source}")

    unit_lines = "\n".join(unit_section)
    unit_content = f"""[Unit]
{unit_lines}

[Mount]
What={target.source}
Where={target.destination}
Type={target.fs_type}
Options={target.options}

[Install]
WantedBy=multi-user.target
"""

    return unit_content


def _live_mount_points() -> List[str]:
    return [partition.mountpoint for partition in psutil.disk_partitions(all=True)]


class MountRegistrar:
    """Creates, verifies and enables one mount unit per destination path."""

    def __init__(self, system_executor: SystemCommandExecutor,
                 unit_dir: str = "/etc/systemd/system",
                 mount_points: Optional[Callable[[], List[str]]] = None):
        """
        Initialize the MountRegistrar.

        Args:
            system_executor: Executor used for systemctl and systemd-analyze
            unit_dir: Directory unit files are written to
            mount_points: Callable returning the live mount table's mount points
        """
        self._system_executor = system_executor
        self.unit_dir = unit_dir
        self._mount_points = mount_points or _live_mount_points

    def unit_path(self, destination: str) -> str:
        return os.path.join(self.unit_dir, escape_unit_name(destination))

    def is_active(self, destination: str) -> bool:
        """True when the mount unit for destination is currently active."""
        success, _, _ = self._system_executor.execute_systemctl_command(
            'is-active', [escape_unit_name(destination)], extra_args=['--quiet']
        )
        return success

    def is_mounted(self, destination: str) -> bool:
        """True when destination appears in the kernel mount table."""
        target = os.path.normpath(destination)
        return any(os.path.normpath(mount_point) == target for mount_point in self._mount_points())

    def ensure_mount(self, source: str, destination: str, fs_type: str, options: str,
                     description: str = "") -> bool:
        """
        Register a boot-persistent mount of source on destination.

        Does nothing if the unit for destination is already active. A unit
        that fails verification is removed again and never enabled.

        Args:
            source: Device or directory to mount
            destination: Mount point; also determines the unit name
            fs_type: Filesystem type ('none' for bind mounts)
            options: Comma separated mount options
            description: Optional unit description

        Returns:
            True if a unit was activated, False if it was already active

        Raises:
            MountError: If verification, activation or the mount check fails
        """
        target = MountTarget(source=source, destination=destination, fs_type=fs_type,
                             options=options, description=description)
        unit_name = escape_unit_name(destination)

        if self.is_active(destination):
            logger.info(f"Mount unit {unit_name} already active, nothing to do")
            return False

        unit_file = self.unit_path(destination)
        logger.info(f"Registering mount unit {unit_name}: {source} -> {destination} ({fs_type}, {options})",
                    extra={'unit': unit_name})

        try:
            self._system_executor.make_directory(destination, check=True)
            self._system_executor.write_file(unit_file, render_mount_unit(target))
        except (CommandError, OSError) as e:
            raise MountError(f"Failed to write mount unit {unit_name}: {e}") from e

        try:
            self._system_executor.execute_verify_command(unit_file, check=True)
        except CommandError as e:
            logger.error(f"Mount unit {unit_name} failed verification, removing it")
            self._system_executor.remove_file(unit_file)
            raise MountError(f"Mount unit {unit_name} failed verification: {e}") from e

        try:
            self._system_executor.execute_systemctl_command('daemon-reload', check=True)
            self._system_executor.execute_systemctl_command(
                'enable', [unit_name], extra_args=['--now'], check=True
            )
        except CommandError as e:
            raise MountError(f"Failed to activate mount unit {unit_name}: {e}") from e

        if not self._system_executor.dry_run and not self.is_mounted(destination):
            raise MountError(f"Mount unit {unit_name} is enabled but {destination} is not mounted")

        logger.info(f"Mounted {source} at {destination}")
        return True
