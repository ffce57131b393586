"""Relocation of live state directories onto array storage."""

import json
import logging
import os
from typing import List, Sequence

from .errors import CommandError, DiskSetupError, MigrationError, ServiceRestartError
from .models import MigrationReport, StateBinding
from .mount_registrar import MountRegistrar
from .service_manager import ServiceManager
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


PENDING_RESTART_FILE = "pending-restart.json"


class StateMigrator:
    """
    Moves state directories onto the array behind bind mounts.

    Each run follows check, quiesce, copy, bind, resume. Whether a binding
    is migrated is read from the live mount unit state, so re-running after
    a crash repeats only the unfinished work. Services stopped by a run are
    recorded in a restart obligation file before they are stopped and the
    record is cleared once they are running again; a later run restarts
    anything a killed run left behind.
    """

    def __init__(self, system_executor: SystemCommandExecutor,
                 mount_registrar: MountRegistrar,
                 service_manager: ServiceManager,
                 state_dir: str = "/var/lib/disk-setup"):
        """
        Initialize the StateMigrator.

        Args:
            system_executor: Executor used for directory creation and copying
            mount_registrar: Registrar for the bind mount units
            service_manager: Service control for quiescing writers
            state_dir: Directory holding the restart obligation record
        """
        self._system_executor = system_executor
        self._mount_registrar = mount_registrar
        self._service_manager = service_manager
        self.state_dir = state_dir

    @property
    def pending_restart_path(self) -> str:
        return os.path.join(self.state_dir, PENDING_RESTART_FILE)

    def ensure_relocated(self, bindings: Sequence[StateBinding], array_root: str) -> MigrationReport:
        """
        Relocate every binding not yet served from the array.

        Args:
            bindings: Enabled state directory bindings
            array_root: Mounted array directory that receives the copies

        Returns:
            MigrationReport describing what was done

        Raises:
            ServiceError: If services cannot be stopped (no data touched)
            MigrationError: If a copy fails
            MountError: If a bind mount cannot be registered
            ServiceRestartError: If stopped services do not start again
        """
        report = MigrationReport()

        owed = self._load_pending_restarts()
        if owed:
            logger.warning(f"Services stopped by an interrupted run are still owed a restart: "
                           f"{', '.join(owed)}")

        pending: List[StateBinding] = []
        for binding in bindings:
            if self._mount_registrar.is_active(binding.original_path):
                logger.info(f"{binding.original_path} is already served from the array, skipping")
                report.skipped.append(binding.name)
            else:
                pending.append(binding)

        owners = [service for binding in pending for service in binding.services]
        # Owed services may be running again after a reboot; they still get stopped
        to_stop = self._service_manager.active_services(owners)
        owed = owed + [name for name in to_stop if name not in owed]

        try:
            if to_stop:
                self._save_pending_restarts(owed)
                self._service_manager.stop(to_stop)
                report.stopped_services = to_stop

            for binding in pending:
                self._relocate(binding, array_root)
                report.migrated.append(binding.name)
        except (DiskSetupError, OSError) as e:
            logger.error(f"State migration aborted: {e}")
            self._restart_after_failure(owed)
            raise

        if owed:
            self._service_manager.start(owed)
            self._clear_pending_restarts()
            report.restarted_services = owed

        return report

    def _relocate(self, binding: StateBinding, array_root: str) -> None:
        """Copy one directory onto the array and bind it back over the original."""
        target = os.path.join(array_root, binding.name)
        logger.info(f"Relocating {binding.original_path} to {target}", extra={'binding': binding.name})

        try:
            if not os.path.isdir(binding.original_path):
                # The bind mount needs an existing mount point
                self._system_executor.make_directory(binding.original_path, check=True)
            self._system_executor.make_directory(target, check=True)
            # Originals stay in place underneath the bind mount
            self._system_executor.execute_copy_command(binding.original_path, target, check=True)
        except CommandError as e:
            raise MigrationError(f"Failed to copy {binding.original_path} to {target}: {e}") from e

        self._mount_registrar.ensure_mount(
            target, binding.original_path, 'none', 'bind',
            description=f"Bind {binding.original_path} onto ephemeral storage"
        )

    def _restart_after_failure(self, services: List[str]) -> None:
        """Bring stopped services back after a failed run; originals are still in place."""
        if not services:
            return
        try:
            self._service_manager.start(services)
        except ServiceRestartError as e:
            logger.error(f"{e}; restart obligation kept in {self.pending_restart_path}")
            return
        self._clear_pending_restarts()

    def _load_pending_restarts(self) -> List[str]:
        path = self.pending_restart_path
        if not os.path.exists(path):
            return []

        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise MigrationError(f"Unreadable restart obligation {path}: {e}") from e

        return [str(name) for name in data.get('services', [])]

    def _save_pending_restarts(self, services: List[str]) -> None:
        content = json.dumps({'services': services}, indent=2)
        self._system_executor.write_file(self.pending_restart_path, content)
        logger.info(f"Recorded restart obligation for {', '.join(services)}")

    def _clear_pending_restarts(self) -> None:
        self._system_executor.remove_file(self.pending_restart_path)
