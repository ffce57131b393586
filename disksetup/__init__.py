"""
Ephemeral disk setup for container hosts.

Finds instance-local NVMe disks, assembles them into a RAID array or
mounts them individually, and moves container runtime state onto them.
"""

from .errors import ConfigurationError, DiskSetupError
from .models import RunConfig, SetupMode
from .orchestrator import Orchestrator

__all__ = ['ConfigurationError', 'DiskSetupError', 'Orchestrator', 'RunConfig', 'SetupMode']
