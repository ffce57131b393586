"""Top-level sequencing of disk setup."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .array_assembler import ArrayAssembler, MdDeviceLookup
from .device_enumerator import DeviceEnumerator
from .errors import ConfigurationError
from .filesystem_provisioner import FilesystemProvisioner
from .models import EphemeralDisk, RunConfig, SetupMode, SetupResult
from .mount_registrar import MountRegistrar
from .service_manager import ServiceManager
from .state_migrator import StateMigrator
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


class Step(Enum):
    """Units of work the orchestrator can schedule."""
    ASSEMBLE_ARRAY = "assemble_array"
    FORMAT_ARRAY = "format_array"
    MOUNT_ARRAY = "mount_array"
    MIGRATE_STATE = "migrate_state"
    PROVISION_DISKS = "provision_disks"


# Steps per mode, in execution order
TRANSITIONS: Dict[SetupMode, Tuple[Step, ...]] = {
    SetupMode.RAID0: (Step.ASSEMBLE_ARRAY, Step.FORMAT_ARRAY, Step.MOUNT_ARRAY, Step.MIGRATE_STATE),
    SetupMode.RAID10: (Step.ASSEMBLE_ARRAY, Step.FORMAT_ARRAY, Step.MOUNT_ARRAY, Step.MIGRATE_STATE),
    SetupMode.MOUNT: (Step.PROVISION_DISKS,),
    SetupMode.NONE: (),
}


@dataclass(frozen=True)
class SetupPlan:
    """Steps selected for a mode and disk count, or the reason there are none."""
    mode: SetupMode
    steps: Tuple[Step, ...]
    skipped_reason: Optional[str] = None


def plan_steps(mode: SetupMode, disk_count: int) -> SetupPlan:
    """
    Select the steps for a run.

    Args:
        mode: Requested setup mode
        disk_count: Number of enumerated ephemeral disks

    Returns:
        SetupPlan; an empty plan carries the no-op reason

    Raises:
        ConfigurationError: If an array mode has too few disks
    """
    if mode is SetupMode.NONE:
        return SetupPlan(mode, (), "mode is none")

    if disk_count == 0:
        return SetupPlan(mode, (), "no ephemeral disks found")

    level = mode.raid_level
    if level is not None and disk_count < level.min_members:
        raise ConfigurationError(
            f"{mode.value} requires at least {level.min_members} disks, found {disk_count}"
        )

    return SetupPlan(mode, TRANSITIONS[mode])


class Orchestrator:
    """Runs enumeration, array assembly, formatting, mounting and migration for one boot."""

    def __init__(self, config: RunConfig,
                 enumerator: Optional[DeviceEnumerator] = None,
                 system_executor: Optional[SystemCommandExecutor] = None,
                 assembler: Optional[ArrayAssembler] = None,
                 provisioner: Optional[FilesystemProvisioner] = None,
                 registrar: Optional[MountRegistrar] = None,
                 migrator: Optional[StateMigrator] = None):
        """
        Initialize the Orchestrator.

        Every collaborator defaults to the production implementation built
        from config; tests pass fakes instead.
        """
        self.config = config
        executor = system_executor or SystemCommandExecutor(
            dry_run=config.dry_run, timeout=config.command_timeout
        )
        self._enumerator = enumerator or DeviceEnumerator(config.by_id_dir, config.device_pattern)
        self._assembler = assembler or ArrayAssembler(
            executor, config.array_name, config.mdadm_conf_path, MdDeviceLookup(config.md_dir)
        )
        self._provisioner = provisioner or FilesystemProvisioner(executor)
        self._registrar = registrar or MountRegistrar(executor, config.unit_dir)
        self._migrator = migrator or StateMigrator(
            executor, self._registrar, ServiceManager(executor), config.state_dir
        )

    def run(self, disks: Optional[Sequence[EphemeralDisk]] = None) -> SetupResult:
        """
        Provision ephemeral storage according to the configured mode.

        Args:
            disks: Pre-enumerated disks; enumerated from the system when None

        Returns:
            SetupResult; result.is_noop is True when there was nothing to do

        Raises:
            ConfigurationError: If the mode cannot be satisfied, before any mutation
            DiskSetupError: On the first failing operation
        """
        mode = self.config.mode
        result = SetupResult(mode=mode)

        if mode is SetupMode.NONE:
            result.skipped_reason = "mode is none"
            logger.info("Mode is none, leaving ephemeral disks untouched")
            return result

        found: List[EphemeralDisk] = list(disks) if disks is not None else self._enumerator.enumerate()
        result.disks = found

        plan = plan_steps(mode, len(found))
        if plan.skipped_reason:
            result.skipped_reason = plan.skipped_reason
            logger.info(f"Nothing to do: {plan.skipped_reason}")
            return result

        logger.info(f"Setting up {len(found)} ephemeral disks in {mode.value} mode: "
                    f"{', '.join(disk.path for disk in found)}")

        for step in plan.steps:
            logger.debug(f"Running step {step.value}")
            self._run_step(step, result)

        return result

    def _run_step(self, step: Step, result: SetupResult) -> None:
        config = self.config

        if step is Step.ASSEMBLE_ARRAY:
            result.array = self._assembler.ensure_array(result.disks, config.mode.raid_level)
        elif step is Step.FORMAT_ARRAY:
            self._provisioner.ensure_filesystem(result.array.device_path)
        elif step is Step.MOUNT_ARRAY:
            self._registrar.ensure_mount(
                result.array.device_path, config.array_mount_point,
                config.fs_type, config.mount_options,
                description=f"Mount ephemeral RAID{result.array.level.value} array"
            )
            result.mounts.append(config.array_mount_point)
        elif step is Step.MIGRATE_STATE:
            bindings = config.enabled_bindings
            if not bindings:
                logger.info("All state directory bindings are disabled, skipping migration")
                return
            result.migration = self._migrator.ensure_relocated(bindings, config.array_mount_point)
        elif step is Step.PROVISION_DISKS:
            for index, disk in enumerate(result.disks, start=1):
                mount_point = config.disk_mount_point(index)
                self._provisioner.ensure_filesystem(disk.path)
                self._registrar.ensure_mount(
                    disk.path, mount_point, config.fs_type, config.mount_options,
                    description=f"Mount ephemeral disk {index}"
                )
                result.mounts.append(mount_point)
