"""Command line entry point for ephemeral disk setup."""

import argparse
import logging
from typing import List, Optional

from .config_manager import ConfigManager
from .errors import ConfigurationError, DiskSetupError
from .logging import init_logging
from .models import SetupResult
from .orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="disk-setup",
        description="Set up instance-local NVMe disks as RAID or plain mounts and "
                    "move container runtime state onto them."
    )
    parser.add_argument("mode", help="raid0, raid10, mount or none")
    parser.add_argument("--dir", dest="mount_root", default=None,
                        help="Directory the disks are mounted under (default /mnt/k8s-disks)")
    parser.add_argument("--no-bind-containerd", action="store_true",
                        help="Keep /var/lib/containerd on the root volume")
    parser.add_argument("--no-bind-kubelet", action="store_true",
                        help="Keep /var/lib/kubelet on the root volume")
    parser.add_argument("--no-bind-pod-logs", action="store_true",
                        help="Keep /var/log/pods on the root volume")
    parser.add_argument("--no-bind-mounts", action="store_true",
                        help="Do not move any state directories")
    parser.add_argument("--config", dest="config_file", default=None,
                        help="JSON configuration file")
    parser.add_argument("--dry-run", action="store_true", default=None,
                        help="Log the commands that would run without changing anything")
    parser.add_argument("--log-format", choices=("text", "json"), default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _disabled_bindings(args: argparse.Namespace) -> Optional[List[str]]:
    if args.no_bind_mounts:
        return ['all']

    disabled = []
    if args.no_bind_containerd:
        disabled.append('containerd')
    if args.no_bind_kubelet:
        disabled.append('kubelet')
    if args.no_bind_pod_logs:
        disabled.append('pod-logs')
    return disabled or None


def _report(result: SetupResult) -> None:
    if result.is_noop:
        print(f"No changes made: {result.skipped_reason}")
        return

    disks = ', '.join(disk.path for disk in result.disks)
    print(f"Successfully set up disks ({disks}) in {result.mode.value} mode")
    for mount_point in result.mounts:
        print(f"  mounted {mount_point}")
    if result.migration is not None:
        for name in result.migration.migrated:
            print(f"  moved {name} onto ephemeral storage")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run disk setup and return the process exit status.

    Returns:
        0 on success or no-op, 1 on configuration or operation failure
    """
    args = build_parser().parse_args(argv)

    overrides = {
        'mode': args.mode,
        'mount_root': args.mount_root,
        'disabled_bindings': _disabled_bindings(args),
        'dry_run': args.dry_run,
        'log_format': args.log_format,
        'log_level': 'DEBUG' if args.verbose else None,
    }

    try:
        config = ConfigManager(args.config_file).load_config(overrides)
    except ConfigurationError as e:
        init_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1

    init_logging(config.log_level, config.log_format)

    try:
        result = Orchestrator(config).run()
    except ConfigurationError as e:
        logger.error(f"Cannot set up disks: {e}")
        return 1
    except DiskSetupError as e:
        logger.error(f"Disk setup failed: {e}", exc_info=config.log_level == 'DEBUG')
        return 1

    _report(result)
    return 0
