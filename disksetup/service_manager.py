"""systemd service control for quiescing writers during migration."""

import logging
from typing import List, Sequence

from .errors import CommandError, ServiceError, ServiceRestartError
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


class ServiceManager:
    """Queries, stops and starts systemd services in batches."""

    def __init__(self, system_executor: SystemCommandExecutor):
        self._system_executor = system_executor

    def is_active(self, name: str) -> bool:
        """True when systemd reports the service as active."""
        success, _, _ = self._system_executor.execute_systemctl_command(
            'is-active', [name], extra_args=['--quiet']
        )
        return success

    def active_services(self, names: Sequence[str]) -> List[str]:
        """Filter names down to services that are currently running, keeping order."""
        active = []
        for name in names:
            if name in active:
                continue
            if self.is_active(name):
                active.append(name)
            else:
                logger.info(f"Service {name} is not active, leaving it alone")
        return active

    def stop(self, names: Sequence[str]) -> None:
        """
        Stop all services in a single systemctl call.

        Raises:
            ServiceError: If systemctl stop fails
        """
        if not names:
            return

        logger.info(f"Stopping services: {', '.join(names)}", extra={'service': list(names)})
        try:
            self._system_executor.execute_systemctl_command('stop', list(names), check=True)
        except CommandError as e:
            raise ServiceError(f"Failed to stop {', '.join(names)}: {e}") from e

    def start(self, names: Sequence[str]) -> None:
        """
        Start all services in a single systemctl call.

        Raises:
            ServiceRestartError: If systemctl start fails
        """
        if not names:
            return

        logger.info(f"Starting services: {', '.join(names)}", extra={'service': list(names)})
        try:
            self._system_executor.execute_systemctl_command('start', list(names), check=True)
        except CommandError as e:
            logger.error(f"Services {', '.join(names)} were stopped for migration and did not restart")
            raise ServiceRestartError(list(names), str(e)) from e
