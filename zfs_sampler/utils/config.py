# zfs_sampler/utils/config.py - Configuration management
"""
Configuration management for the sampler.
Loads configuration from YAML files and environment overrides.
"""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Mapping, Optional
import logging


class Config:
    """
    Configuration manager for the sampler.

    Built-in defaults are merged with a YAML file, then with environment
    overrides. Values are addressed with dot-notation keys.
    """

    DEFAULT_CONFIG = {
        'sampler': {
            'interval': 60,
            'max_intervals': 50,
            'node_name': None,
            'poll_timeout': 0.1,
        },
        'capture': {
            'source': 'zio',
            'buffer_size': 64,
            'include_dirs': ['/usr/src/zfs/include', '/usr/src/zfs/include/os/linux/kernel'],
            'synthetic_pools': {1: [2, 3], 4: [5]},
            'synthetic_batch': 20,
        },
        'output': {
            'format': 'collectd',
            'socket': '/var/run/collectd-unixsock',
            'timeout': 1.0,
            'transport_override': None,
            'prometheus_port': 9101,
        },
    }

    # Environment variable -> (config key, converter)
    ENV_OVERRIDES = {
        'ZFS_SAMPLER_INTERVAL': ('sampler.interval', int),
        'ZFS_SAMPLER_MAX_INTERVALS': ('sampler.max_intervals', int),
        'ZFS_SAMPLER_NODE_NAME': ('sampler.node_name', str),
        'ZFS_SAMPLER_SOCKET': ('output.socket', str),
        'ZFS_SAMPLER_TRANSPORT_OVERRIDE': ('output.transport_override', str),
    }

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML configuration file
        """
        self.logger = logging.getLogger(__name__)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str):
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.warning(f"Config file not found: {config_file}, using defaults")
            return

        try:
            with open(config_path, 'r') as f:
                loaded_config = yaml.safe_load(f) or {}

            self._merge_config(self.config, loaded_config)
            self.logger.info(f"Loaded configuration from {config_file}")

        except Exception as e:
            self.logger.error(f"Failed to load config: {e}")
            raise

    def load_from_env(self, environ: Optional[Mapping[str, str]] = None):
        """
        Apply overrides from environment variables.

        Empty variables are ignored.

        Args:
            environ: Mapping to read from (default: os.environ)
        """
        environ = os.environ if environ is None else environ

        for name, (key, convert) in self.ENV_OVERRIDES.items():
            raw = environ.get(name)
            if not raw:
                continue
            try:
                self.set(key, convert(raw))
            except ValueError:
                raise ValueError(f"Invalid value for {name}: {raw!r}") from None
            self.logger.debug(f"{key} overridden from {name}")

    def _merge_config(self, base: Dict, override: Dict):
        """
        Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'sampler.interval')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'output.socket')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def to_dict(self) -> Dict:
        """
        Get full configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return copy.deepcopy(self.config)

    def save_to_file(self, config_file: str):
        """
        Save current configuration to YAML file.

        Args:
            config_file: Path to output YAML file
        """
        config_path = Path(config_file)

        try:
            with open(config_path, 'w') as f:
                yaml.dump(self.config, f, default_flow_style=False)

            self.logger.info(f"Saved configuration to {config_file}")

        except Exception as e:
            self.logger.error(f"Failed to save config: {e}")
            raise
