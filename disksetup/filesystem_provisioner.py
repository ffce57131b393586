"""Idempotent filesystem creation on ephemeral devices."""

import logging

from .errors import CommandError, FilesystemError
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


# mkfs.xfs picks a log stripe unit from the md stripe geometry that exceeds
# the 32k maximum log buffer size and then falls back with a warning. A
# fixed 8-block stripe unit keeps the log buffers within range.
LOG_STRIPE_UNIT = "su=8b"


class FilesystemProvisioner:
    """Formats devices that do not yet carry a filesystem signature."""

    def __init__(self, system_executor: SystemCommandExecutor):
        self._system_executor = system_executor

    def get_signature(self, device_path: str) -> str:
        """
        Return the filesystem type found on a device, or '' for a blank device.

        Raises:
            FilesystemError: If the device cannot be inspected
        """
        try:
            _, stdout, _ = self._system_executor.execute_lsblk_command(device_path, 'FSTYPE', check=True)
        except CommandError as e:
            if self._system_executor.dry_run:
                # The array is not created in dry run mode, so there is nothing to inspect yet
                logger.info(f"DRY RUN: {device_path} cannot be inspected, assuming blank")
                return ""
            raise FilesystemError(f"Cannot inspect {device_path}: {e}") from e

        return stdout.strip()

    def ensure_filesystem(self, device_path: str) -> bool:
        """
        Format device_path with XFS unless it already has a signature.

        Any existing signature, including an unexpected filesystem type,
        leaves the device untouched.

        Returns:
            True if the device was formatted during this call
        """
        signature = self.get_signature(device_path)
        if signature:
            logger.info(f"{device_path} already formatted ({signature}), skipping mkfs")
            return False

        logger.info(f"Formatting {device_path} as xfs", extra={'device': device_path})
        try:
            self._system_executor.execute_mkfs_command(device_path, LOG_STRIPE_UNIT, check=True)
        except CommandError as e:
            raise FilesystemError(f"Failed to format {device_path}: {e}") from e
        return True
