"""Data models for ephemeral disk setup."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class SetupMode(Enum):
    """How the enumerated disks are turned into storage."""
    RAID0 = "raid0"
    RAID10 = "raid10"
    MOUNT = "mount"
    NONE = "none"

    @property
    def raid_level(self) -> Optional["RaidLevel"]:
        """RAID level for array modes, None otherwise."""
        if self is SetupMode.RAID0:
            return RaidLevel.RAID0
        if self is SetupMode.RAID10:
            return RaidLevel.RAID10
        return None


class RaidLevel(Enum):
    """Supported md RAID levels."""
    RAID0 = 0
    RAID10 = 10

    @property
    def min_members(self) -> int:
        """Smallest member count mdadm accepts for this level."""
        return 4 if self is RaidLevel.RAID10 else 1


@dataclass(frozen=True)
class EphemeralDisk:
    """An instance-local block device found at boot."""
    path: str
    alias: str = ""

    def __str__(self) -> str:
        return self.path


@dataclass
class LogicalArray:
    """An md array assembled from ephemeral disks."""
    name: str
    level: RaidLevel
    members: List[str]
    device_path: Optional[str] = None


@dataclass(frozen=True)
class MountTarget:
    """A persistent mount from a source onto a destination directory."""
    source: str
    destination: str
    fs_type: str
    options: str
    description: str = ""

    @property
    def is_bind(self) -> bool:
        return 'bind' in self.options.split(',')


@dataclass(frozen=True)
class StateBinding:
    """A state directory that may be relocated onto array storage."""
    name: str
    original_path: str
    services: Tuple[str, ...] = ()
    enabled: bool = True


# Directories relocated onto the array, with the services that write to them.
DEFAULT_BINDINGS: Tuple[StateBinding, ...] = (
    StateBinding('containerd', '/var/lib/containerd', ('containerd',)),
    StateBinding('kubelet', '/var/lib/kubelet', ('kubelet',)),
    StateBinding('pod-logs', '/var/log/pods'),
)


@dataclass(frozen=True)
class RunConfig:
    """Settings for a single run; built once at startup and never mutated."""
    mode: SetupMode = SetupMode.NONE
    mount_root: str = "/mnt/k8s-disks"
    bindings: Tuple[StateBinding, ...] = DEFAULT_BINDINGS
    array_name: str = "kubernetes"
    mdadm_conf_path: str = "/etc/mdadm.conf"
    md_dir: str = "/dev/md"
    by_id_dir: str = "/dev/disk/by-id"
    device_pattern: str = "nvme-Amazon_EC2_NVMe_Instance_Storage_*"
    unit_dir: str = "/etc/systemd/system"
    state_dir: str = "/var/lib/disk-setup"
    fs_type: str = "xfs"
    mount_options: str = "defaults,noatime"
    command_timeout: Optional[int] = None
    dry_run: bool = False
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def enabled_bindings(self) -> List[StateBinding]:
        return [binding for binding in self.bindings if binding.enabled]

    @property
    def array_mount_point(self) -> str:
        return f"{self.mount_root.rstrip('/')}/0"

    def disk_mount_point(self, index: int) -> str:
        """Mount point for the index-th raw disk in mount mode (1-based)."""
        return f"{self.mount_root.rstrip('/')}/{index}"


@dataclass
class MigrationReport:
    """What the state migrator did during one run."""
    migrated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    stopped_services: List[str] = field(default_factory=list)
    restarted_services: List[str] = field(default_factory=list)


@dataclass
class SetupResult:
    """Outcome of an orchestrator run."""
    mode: SetupMode
    disks: List[EphemeralDisk] = field(default_factory=list)
    mounts: List[str] = field(default_factory=list)
    array: Optional[LogicalArray] = None
    migration: Optional[MigrationReport] = None
    skipped_reason: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.skipped_reason is not None
