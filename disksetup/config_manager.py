"""Run configuration loading and validation."""

import json
import logging
import os
from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ConfigurationError
from .models import DEFAULT_BINDINGS, RunConfig, SetupMode, StateBinding
from .system_executor import SystemCommandExecutor

logger = logging.getLogger(__name__)


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value: {value}")


def _parse_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(',') if item.strip()]
    return [str(item) for item in value]


def _is_command_safe_path(path: str) -> bool:
    return bool(SystemCommandExecutor.FILE_PATH_PATTERN.match(path)) and '..' not in path.split('/')


class ConfigManager:
    """Builds the RunConfig from defaults, a JSON file, the environment and CLI overrides."""

    # Environment variable mappings
    ENV_MAPPINGS = {
        'DISK_SETUP_MODE': 'mode',
        'DISK_SETUP_MOUNT_ROOT': 'mount_root',
        'DISK_SETUP_ARRAY_NAME': 'array_name',
        'DISK_SETUP_MDADM_CONF': 'mdadm_conf_path',
        'DISK_SETUP_MD_DIR': 'md_dir',
        'DISK_SETUP_BY_ID_DIR': 'by_id_dir',
        'DISK_SETUP_DEVICE_PATTERN': 'device_pattern',
        'DISK_SETUP_UNIT_DIR': 'unit_dir',
        'DISK_SETUP_STATE_DIR': 'state_dir',
        'DISK_SETUP_MOUNT_OPTIONS': 'mount_options',
        'DISK_SETUP_COMMAND_TIMEOUT': 'command_timeout',
        'DISK_SETUP_DRY_RUN': 'dry_run',
        'DISK_SETUP_DISABLED_BINDINGS': 'disabled_bindings',
        'LOG_LEVEL': 'log_level',
        'LOG_FORMAT': 'log_format',
    }

    PATH_KEYS = ('mount_root', 'mdadm_conf_path', 'md_dir', 'by_id_dir', 'unit_dir', 'state_dir')

    LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}

    def __init__(self, config_file_path: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the ConfigManager.

        Args:
            config_file_path: Optional path to a JSON configuration file
            environ: Environment to read overrides from (defaults to os.environ)
        """
        self.config_file_path = config_file_path
        self._environ = os.environ if environ is None else environ

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> RunConfig:
        """
        Load the run configuration.

        Later sources win: defaults, config file, environment, overrides.
        Override values of None are ignored so unset CLI options fall through.

        Returns:
            Validated, immutable RunConfig
        """
        values: Dict[str, Any] = {}

        if self.config_file_path:
            values.update(self._load_config_file(self.config_file_path))

        values.update(self._load_from_environment())

        if overrides:
            values.update({key: value for key, value in overrides.items() if value is not None})

        config = self._build_config(values)
        self._validate_config(config)

        logger.debug(f"Configuration loaded: mode={config.mode.value} mount_root={config.mount_root}")
        return config

    def _load_config_file(self, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Error loading config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")

        logger.info(f"Loaded configuration from {path}")
        return data

    def _load_from_environment(self) -> Dict[str, Any]:
        env_config = {}
        for env_var, key in self.ENV_MAPPINGS.items():
            value = self._environ.get(env_var)
            if value is not None and value != "":
                env_config[key] = value
        return env_config

    def _build_config(self, values: Dict[str, Any]) -> RunConfig:
        known = {f.name for f in fields(RunConfig)} - {'bindings'}
        unknown = set(values) - known - {'disabled_bindings'}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {key: value for key, value in values.items() if key in known}

        if 'mode' in kwargs:
            try:
                kwargs['mode'] = SetupMode(str(kwargs['mode']).lower())
            except ValueError:
                valid = ', '.join(mode.value for mode in SetupMode)
                raise ConfigurationError(f"Invalid mode '{kwargs['mode']}', expected one of: {valid}")

        if 'dry_run' in kwargs:
            kwargs['dry_run'] = _parse_bool(kwargs['dry_run'])

        if kwargs.get('command_timeout') is not None:
            try:
                kwargs['command_timeout'] = int(kwargs['command_timeout'])
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid command timeout: {kwargs['command_timeout']}")

        if 'log_level' in kwargs:
            kwargs['log_level'] = str(kwargs['log_level']).upper()

        config = RunConfig(**kwargs)

        disabled = _parse_list(values.get('disabled_bindings', []))
        if disabled:
            config = replace(config, bindings=self._disable_bindings(disabled))

        return config

    @staticmethod
    def _disable_bindings(names: Iterable[str]) -> Tuple[StateBinding, ...]:
        names = set(names)
        if 'all' in names:
            names = {binding.name for binding in DEFAULT_BINDINGS}

        valid = {binding.name for binding in DEFAULT_BINDINGS}
        unknown = names - valid
        if unknown:
            raise ConfigurationError(f"Unknown bindings: {', '.join(sorted(unknown))}")

        return tuple(replace(binding, enabled=binding.name not in names) for binding in DEFAULT_BINDINGS)

    def _validate_config(self, config: RunConfig) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If any value is invalid
        """
        errors = []

        for key in self.PATH_KEYS:
            value = getattr(config, key)
            if not value or not os.path.isabs(value):
                errors.append(f"{key} must be an absolute path: {value!r}")
            elif not _is_command_safe_path(value):
                errors.append(f"{key} contains characters the disk tools do not accept: {value!r}")

        # Array devices found under md_dir are handed to lsblk and mkfs.xfs
        md_dir = config.md_dir or ''
        if not SystemCommandExecutor.DEVICE_PATH_PATTERN.match(md_dir) or '..' in md_dir.split('/'):
            errors.append(f"md_dir must be a directory under /dev: {config.md_dir!r}")

        for binding in config.enabled_bindings:
            if not _is_command_safe_path(binding.original_path):
                errors.append(f"Invalid path for binding {binding.name}: {binding.original_path!r}")

        if config.command_timeout is not None and config.command_timeout <= 0:
            errors.append("command_timeout must be positive")

        if config.log_level not in self.LOG_LEVELS:
            errors.append(f"Invalid log level: {config.log_level}")

        if config.log_format not in ('text', 'json'):
            errors.append(f"Invalid log format: {config.log_format}")

        if not config.array_name.replace('-', '').replace('_', '').isalnum():
            errors.append(f"Invalid array name: {config.array_name}")

        if errors:
            raise ConfigurationError("; ".join(errors))
