"""Validated execution of the system commands disk setup depends on."""

import logging
import os
import re
import shlex
import subprocess
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import CommandError, InvalidArgumentError


logger = logging.getLogger(__name__)


class CommandType(Enum):
    """Supported command types for validation."""
    MDADM = "mdadm"
    LSBLK = "lsblk"
    MKFS = "mkfs"
    SYSTEMCTL = "systemctl"
    SYSTEMD_ANALYZE = "systemd-analyze"
    COPY = "cp"
    MKDIR = "mkdir"


class SystemCommandExecutor:
    """Executor for mdadm, mkfs, systemd and copy commands with argument validation."""

    # Allowed commands and their argument patterns. Entries ending in '='
    # accept any value after the equals sign.
    ALLOWED_COMMANDS = {
        CommandType.MDADM: {
            'binary': 'mdadm',
            'allowed_args': {
                '--create', '--force', '--verbose', '--detail', '--scan',
                '--level=', '--name=', '--raid-devices='
            },
            'requires_sudo': True
        },
        CommandType.LSBLK: {
            'binary': 'lsblk',
            'allowed_args': {'-n', '--noheadings', '-o', '--output', '-d', '--nodeps'},
            'requires_sudo': False
        },
        CommandType.MKFS: {
            'binary': 'mkfs.xfs',
            'allowed_args': {'-l', '-f', '-q', '-L'},
            'requires_sudo': True
        },
        CommandType.SYSTEMCTL: {
            'binary': 'systemctl',
            'allowed_args': {
                'is-active', 'start', 'stop', 'enable', 'daemon-reload',
                '--now', '--quiet', '--no-block'
            },
            'requires_sudo': True
        },
        CommandType.SYSTEMD_ANALYZE: {
            'binary': 'systemd-analyze',
            'allowed_args': {'verify', '--man=no'},
            'requires_sudo': False
        },
        CommandType.COPY: {
            'binary': 'cp',
            'allowed_args': {'-a', '--archive', '-T'},
            'requires_sudo': True
        },
        CommandType.MKDIR: {
            'binary': 'mkdir',
            'allowed_args': {'-p', '--parents'},
            'requires_sudo': True
        },
    }

    # Options whose following argument is a free-form value
    VALUE_OPTIONS = {'-o', '--output', '-l', '-L'}

    # Device path validation pattern (/dev/nvme1n1, /dev/md/kubernetes, /dev/md127)
    DEVICE_PATH_PATTERN = re.compile(r'^/dev(/[a-zA-Z0-9_.:-]+)+$')

    # File path validation pattern (mount points, unit files, state directories)
    FILE_PATH_PATTERN = re.compile(r'^/[a-zA-Z0-9/_.:@\\-]*$')

    # systemd unit name pattern (containerd, mnt-k8s\x2ddisks-0.mount)
    UNIT_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9:_.@\\-]+$')

    def __init__(self, dry_run: bool = False, use_sudo: bool = False,
                 timeout: Optional[int] = None):
        """
        Initialize the SystemCommandExecutor.

        Args:
            dry_run: If True, commands will be logged but not executed
            use_sudo: Prefix privileged commands with sudo (not needed when run as root)
            timeout: Optional timeout in seconds; None lets commands run to completion
        """
        self.dry_run = dry_run
        self.use_sudo = use_sudo
        self.timeout = timeout
        self._command_history: List[Dict] = []

    def execute_mdadm_command(self, args: List[str], check: bool = False) -> Tuple[bool, str, str]:
        """
        Execute an mdadm command.

        Args:
            args: mdadm arguments, e.g. ['--detail', '--scan']
            check: Raise CommandError on failure instead of returning it

        Returns:
            Tuple of (success, stdout, stderr)
        """
        return self._execute_command(CommandType.MDADM, list(args), check=check)

    def execute_lsblk_command(self, device_path: str, columns: str = 'FSTYPE',
                              check: bool = False) -> Tuple[bool, str, str]:
        """
        Query a single block device with lsblk, without headings.

        Args:
            device_path: Device to query
            columns: Comma separated lsblk output columns
            check: Raise CommandError on failure instead of returning it

        Returns:
            Tuple of (success, stdout, stderr)
        """
        if not self._validate_device_path(device_path):
            raise InvalidArgumentError(f"Invalid device path: {device_path}")

        if not re.match(r'^[A-Z,-]+$', columns):
            raise InvalidArgumentError(f"Invalid lsblk columns: {columns}")

        return self._execute_command(
            CommandType.LSBLK, ['-d', '-n', '-o', columns, device_path], check=check
        )

    def execute_mkfs_command(self, device_path: str, log_options: Optional[str] = None,
                             check: bool = False) -> Tuple[bool, str, str]:
        """
        Create an XFS filesystem on a device.

        Args:
            device_path: Device path to format
            log_options: Value for mkfs.xfs -l (log section options)
            check: Raise CommandError on failure instead of returning it

        Returns:
            Tuple of (success, stdout, stderr)
        """
        if not self._validate_device_path(device_path):
            raise InvalidArgumentError(f"Invalid device path: {device_path}")

        cmd_args = []
        if log_options:
            if not re.match(r'^[a-z0-9=,]+$', log_options):
                raise InvalidArgumentError(f"Invalid log options: {log_options}")
            cmd_args.extend(['-l', log_options])

        cmd_args.append(device_path)

        return self._execute_command(CommandType.MKFS, cmd_args, check=check)

    def execute_systemctl_command(self, action: str, units: Sequence[str] = (),
                                  extra_args: Sequence[str] = (),
                                  check: bool = False) -> Tuple[bool, str, str]:
        """
        Execute a systemctl action against zero or more units.

        Args:
            action: systemctl verb (is-active, start, stop, enable, daemon-reload)
            units: Unit or service names
            extra_args: Additional flags such as --now
            check: Raise CommandError on failure instead of returning it

        Returns:
            Tuple of (success, stdout, stderr)
        """
        if action not in self.ALLOWED_COMMANDS[CommandType.SYSTEMCTL]['allowed_args']:
            raise InvalidArgumentError(f"systemctl action not allowed: {action}")

        for unit in units:
            if not self._validate_unit_name(unit):
                raise InvalidArgumentError(f"Invalid unit name: {unit}")

        cmd_args = [action] + list(extra_args) + list(units)
        return self._execute_command(CommandType.SYSTEMCTL, cmd_args, check=check)

    def execute_verify_command(self, unit_path: str, check: bool = False) -> Tuple[bool, str, str]:
        """Run systemd-analyze verify against a unit file."""
        if not self._validate_file_path(unit_path):
            raise InvalidArgumentError(f"Invalid unit path: {unit_path}")

        return self._execute_command(
            CommandType.SYSTEMD_ANALYZE, ['verify', '--man=no', unit_path], check=check
        )

    def execute_copy_command(self, source_dir: str, target_dir: str,
                             check: bool = False) -> Tuple[bool, str, str]:
        """
        Copy the contents of source_dir into target_dir, preserving attributes.

        Args:
            source_dir: Directory whose contents are copied
            target_dir: Existing destination directory
            check: Raise CommandError on failure instead of returning it

        Returns:
            Tuple of (success, stdout, stderr)
        """
        for path in (source_dir, target_dir):
            if not self._validate_file_path(path):
                raise InvalidArgumentError(f"Invalid path: {path}")

        source = source_dir.rstrip('/') + '/.'
        return self._execute_command(CommandType.COPY, ['-a', source, target_dir], check=check)

    def make_directory(self, path: str, check: bool = False) -> Tuple[bool, str, str]:
        """Create a directory and its parents."""
        if not self._validate_file_path(path):
            raise InvalidArgumentError(f"Invalid path: {path}")

        return self._execute_command(CommandType.MKDIR, ['-p', path], check=check)

    def write_file(self, path: str, content: str) -> None:
        """
        Write a configuration file, honouring dry run mode.

        Args:
            path: Absolute path of the file
            content: Text to write
        """
        if not self._validate_file_path(path):
            raise InvalidArgumentError(f"Invalid path: {path}")

        logger.info(f"Writing file: {path}")
        self._command_history.append({
            'command': f"write {shlex.quote(path)}",
            'argv': ['write', path],
            'type': 'write',
            'dry_run': self.dry_run
        })

        if self.dry_run:
            logger.info("DRY RUN: File would be written")
            return

        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, 'w') as f:
            f.write(content)

    def remove_file(self, path: str) -> None:
        """Remove a file if it exists, honouring dry run mode."""
        logger.info(f"Removing file: {path}")
        self._command_history.append({
            'command': f"rm {shlex.quote(path)}",
            'argv': ['rm', path],
            'type': 'remove',
            'dry_run': self.dry_run
        })

        if self.dry_run:
            return

        if os.path.exists(path):
            os.remove(path)

    def _execute_command(self,
                         command_type: CommandType,
                         args: List[str],
                         check: bool = False) -> Tuple[bool, str, str]:
        """
        Execute a validated command with proper logging and error handling.

        Args:
            command_type: Type of command to execute
            args: Command arguments
            check: Raise CommandError on failure

        Returns:
            Tuple of (success, stdout, stderr)
        """
        command_config = self.ALLOWED_COMMANDS[command_type]
        binary = command_config['binary']
        requires_sudo = command_config['requires_sudo'] and self.use_sudo

        # Validate all arguments
        self._validate_command_args(command_type, args)

        if requires_sudo:
            full_command = ['sudo', binary] + args
        else:
            full_command = [binary] + args

        command_str = ' '.join(shlex.quote(arg) for arg in full_command)
        logger.info(f"Executing command: {command_str}")

        entry = {
            'command': command_str,
            'argv': full_command,
            'type': command_type.value,
            'dry_run': self.dry_run,
            'returncode': None
        }
        self._command_history.append(entry)

        if self.dry_run and not self._is_read_only(command_type, args):
            logger.info("DRY RUN: Command would be executed")
            return True, "DRY RUN", ""

        try:
            result = subprocess.run(
                full_command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out: {command_str}")
            if check:
                raise CommandError(full_command, None, "Command timed out")
            return False, "", "Command timed out"
        except OSError as e:
            logger.error(f"Error executing command {command_str}: {e}")
            if check:
                raise CommandError(full_command, None, str(e))
            return False, "", str(e)

        entry['returncode'] = result.returncode
        success = result.returncode == 0

        if success:
            logger.info(f"Command executed successfully: {command_str}")
        elif check:
            logger.error(f"Command failed with return code {result.returncode}: {command_str}")
            logger.error(f"Error output: {result.stderr}")
            raise CommandError(full_command, result.returncode, result.stderr)
        else:
            # Non-zero exits are expected for queries such as systemctl is-active
            logger.debug(f"Command returned {result.returncode}: {command_str}")

        return success, result.stdout, result.stderr

    def _validate_command_args(self, command_type: CommandType, args: List[str]) -> None:
        """
        Validate command arguments against allowed patterns.

        Args:
            command_type: Type of command
            args: Arguments to validate

        Raises:
            InvalidArgumentError: If any argument is not allowed
        """
        allowed_args = self.ALLOWED_COMMANDS[command_type]['allowed_args']

        for index, arg in enumerate(args):
            if arg in allowed_args:
                continue

            if arg.startswith('--') and '=' in arg:
                if arg.split('=', 1)[0] + '=' in allowed_args:
                    continue

            # Paths and unit names are validated by the public wrappers
            if (self.DEVICE_PATH_PATTERN.match(arg) or
                    self.FILE_PATH_PATTERN.match(arg) or
                    (command_type == CommandType.SYSTEMCTL and self.UNIT_NAME_PATTERN.match(arg))):
                continue

            if index > 0 and args[index - 1] in self.VALUE_OPTIONS:
                continue

            raise InvalidArgumentError(f"Argument not allowed for {command_type.value}: {arg}")

    @staticmethod
    def _is_read_only(command_type: CommandType, args: List[str]) -> bool:
        """Commands that only inspect state still run in dry run mode."""
        if command_type == CommandType.LSBLK:
            return True
        if command_type == CommandType.SYSTEMCTL:
            return bool(args) and args[0] == 'is-active'
        if command_type == CommandType.MDADM:
            return '--detail' in args
        return False

    def _validate_device_path(self, path: str) -> bool:
        """Validate device path format."""
        return bool(self.DEVICE_PATH_PATTERN.match(path)) and '..' not in path

    def _validate_file_path(self, path: str) -> bool:
        """Validate file path format."""
        return bool(self.FILE_PATH_PATTERN.match(path)) and '..' not in path.split('/')

    def _validate_unit_name(self, name: str) -> bool:
        return bool(self.UNIT_NAME_PATTERN.match(name))

    def get_command_history(self) -> List[Dict]:
        """Get the history of executed commands."""
        return self._command_history.copy()

    def clear_command_history(self) -> None:
        """Clear the command history."""
        self._command_history.clear()
