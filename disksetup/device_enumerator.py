"""Discovery of instance-local ephemeral disks."""

import glob
import logging
import os
from typing import Dict, List

from .models import EphemeralDisk

logger = logging.getLogger(__name__)


class DeviceEnumerator:
    """Lists ephemeral disks through the stable by-id symlinks udev creates."""

    def __init__(self, by_id_dir: str = "/dev/disk/by-id",
                 pattern: str = "nvme-Amazon_EC2_NVMe_Instance_Storage_*"):
        """
        Initialize the DeviceEnumerator.

        Args:
            by_id_dir: Directory holding device identifier symlinks
            pattern: Glob matched against entries of by_id_dir
        """
        self.by_id_dir = by_id_dir
        self.pattern = pattern

    def enumerate(self) -> List[EphemeralDisk]:
        """
        Enumerate ephemeral disks, one entry per physical device.

        Several aliases (namespaces, serial variants) can point at the same
        device; they are collapsed onto the realpath. The result is sorted
        by canonical path so array member order is reproducible.

        Returns:
            List of EphemeralDisk, empty when nothing is found
        """
        if not os.path.isdir(self.by_id_dir):
            logger.info(f"Device identifier directory {self.by_id_dir} not found, no ephemeral disks")
            return []

        disks: Dict[str, EphemeralDisk] = {}

        for alias in sorted(glob.glob(os.path.join(self.by_id_dir, self.pattern))):
            # Partitions show up as -partN aliases of the same disk
            if '-part' in os.path.basename(alias):
                continue

            canonical = os.path.realpath(alias)
            if not os.path.exists(canonical):
                logger.warning(f"Skipping dangling device alias: {alias}")
                continue

            if canonical not in disks:
                disks[canonical] = EphemeralDisk(path=canonical, alias=alias)
                logger.info(f"Discovered ephemeral disk: {canonical} ({os.path.basename(alias)})")

        if not disks:
            logger.info(f"No devices matching {self.pattern} in {self.by_id_dir}")

        return [disks[path] for path in sorted(disks)]
