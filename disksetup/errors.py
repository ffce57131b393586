"""Exception hierarchy for disk setup operations."""

import shlex
from typing import List, Optional


class DiskSetupError(Exception):
    """Base class for all disk setup failures."""
    pass


class ConfigurationError(DiskSetupError):
    """Invalid mode, paths or disk count; raised before anything is mutated."""
    pass


class CommandError(DiskSetupError):
    """An external command exited non-zero."""

    def __init__(self, command: List[str], returncode: Optional[int], stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        command_str = ' '.join(shlex.quote(arg) for arg in self.command)
        message = f"Command failed ({returncode}): {command_str}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class InvalidArgumentError(DiskSetupError, ValueError):
    """A command argument failed validation; nothing was executed."""
    pass


class ArrayError(DiskSetupError):
    """The RAID array could not be created or located."""
    pass


class FilesystemError(DiskSetupError):
    """A device could not be inspected or formatted."""
    pass


class MountError(DiskSetupError):
    """A mount unit failed verification or activation."""
    pass


class ServiceError(DiskSetupError):
    """A dependent service could not be queried or stopped."""
    pass


class ServiceRestartError(ServiceError):
    """Services stopped for migration could not be started again."""

    def __init__(self, services: List[str], reason: str):
        self.services = list(services)
        super().__init__(f"Failed to restart {', '.join(self.services)}: {reason}")


class MigrationError(DiskSetupError):
    """A state directory could not be relocated onto the array."""
    pass
