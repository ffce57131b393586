"""md RAID array creation and re-discovery."""

import logging
import os
import re
from typing import List, Optional, Sequence

from .errors import ArrayError
from .models import EphemeralDisk, LogicalArray, RaidLevel
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


class MdDeviceLookup:
    """Finds the current device node for a named md array."""

    def __init__(self, md_dir: str = "/dev/md"):
        self.md_dir = md_dir

    def find(self, name: str) -> Optional[str]:
        """
        Return the path of the array symlink for name, or None.

        The entry may carry a homehost prefix (host:kubernetes) and a
        numeric suffix (kubernetes_0) when the array was assembled on
        another host. Anything else around the name is a different array.
        """
        if not os.path.isdir(self.md_dir):
            return None

        pattern = re.compile(rf"^([^:/]+:)?{re.escape(name)}(_[0-9a-z]+)?$")
        matches = [
            entry for entry in sorted(os.listdir(self.md_dir))
            if pattern.match(entry)
        ]
        if not matches:
            return None

        return os.path.join(self.md_dir, matches[-1])


class ArrayAssembler:
    """Creates the ephemeral RAID array once and locates it on every run."""

    def __init__(self, system_executor: SystemCommandExecutor,
                 array_name: str = "kubernetes",
                 config_path: str = "/etc/mdadm.conf",
                 lookup: Optional[MdDeviceLookup] = None):
        """
        Initialize the ArrayAssembler.

        Args:
            system_executor: Executor used for mdadm
            array_name: Fixed md array name
            config_path: mdadm configuration record; its presence blocks re-creation
            lookup: Resolver from array name to current device path
        """
        self._system_executor = system_executor
        self.array_name = array_name
        self.config_path = config_path
        self._lookup = lookup or MdDeviceLookup()

    @property
    def array_device(self) -> str:
        return f"/dev/md/{self.array_name}"

    def is_initialized(self) -> bool:
        """True when a configuration record from an earlier creation exists."""
        return os.path.exists(self.config_path)

    def ensure_array(self, disks: Sequence[EphemeralDisk], level: RaidLevel) -> LogicalArray:
        """
        Make sure the array exists and return it with its current device path.

        Member count is not validated here; the orchestrator rejects
        undersized RAID-10 requests before calling in. No resync wait is
        performed after creation.

        Args:
            disks: Member disks, in array slot order
            level: RAID level for a fresh array

        Returns:
            LogicalArray with device_path resolved for this boot

        Raises:
            ArrayError: If the array cannot be located after creation
            CommandError: If mdadm fails
        """
        members = [disk.path for disk in disks]
        array = LogicalArray(name=self.array_name, level=level, members=members)

        if self.is_initialized():
            logger.info(f"Array configuration {self.config_path} exists, skipping creation")
        else:
            self._create_array(members, level)
            self._persist_configuration()

        array.device_path = self._resolve_device()
        logger.info(f"Array {self.array_name} is available at {array.device_path}")
        return array

    def _create_array(self, members: List[str], level: RaidLevel) -> None:
        logger.info(f"Creating RAID{level.value} array {self.array_name} from {len(members)} disks: "
                    f"{', '.join(members)}")
        self._system_executor.execute_mdadm_command(
            ['--create', '--force', '--verbose', self.array_device,
             f'--level={level.value}',
             f'--name={self.array_name}',
             f'--raid-devices={len(members)}'] + members,
            check=True
        )

    def _persist_configuration(self) -> None:
        """Write the mdadm scan so reboots reassemble instead of recreating."""
        if self._system_executor.dry_run:
            logger.info(f"DRY RUN: Array configuration would be saved to {self.config_path}")
            return

        _, stdout, _ = self._system_executor.execute_mdadm_command(['--detail', '--scan'], check=True)
        self._system_executor.write_file(self.config_path, stdout)
        logger.info(f"Array configuration saved to {self.config_path}")

    def _resolve_device(self) -> str:
        device = self._lookup.find(self.array_name)
        if device is None:
            if self._system_executor.dry_run:
                return self.array_device
            raise ArrayError(f"No md device found for array {self.array_name}")
        return device
