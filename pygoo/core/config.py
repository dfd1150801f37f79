"""
pygoo - Configuration Management

This module holds the parameter objects used to build pygoo managers,
the polling/paging knobs, and the loader for gcloud-style config files.
"""

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import IO, Optional, Union

import yaml

from pygoo.core.exceptions import ConfigError

# Version for usage tracking
VERSION = '1.0.0'


@dataclass
class AppContext:
    """
    Parameter object used to initialize PyGoo.

    Example:
        ctx = AppContext(
            service_account='robot@my-project.iam.gserviceaccount.com',
            key_of_service_account=pem_bytes,
            project_id='my-project'
        )
    """

    service_account: Optional[str] = None
    key_of_service_account: Optional[bytes] = None
    project_id: Optional[str] = None
    key_file: Optional[str] = None


@dataclass
class GcloudConfig:
    """Binding object of the config file (json or yaml)."""

    service_account: str = ''
    project_id: str = ''
    key_file: Optional[str] = None

    def to_app_context(self) -> AppContext:
        """
        Build an AppContext, reading the private key from key_file if it is a PEM file.

        Raises:
            ConfigError: If the PEM key file cannot be read
        """
        key = None
        key_file = str(Path(self.key_file).expanduser()) if self.key_file else None
        if key_file and not key_file.endswith('.json'):
            try:
                key = Path(key_file).read_bytes()
            except OSError as e:
                raise ConfigError(f"Cannot read key file {key_file}: {e}") from e
            key_file = None

        return AppContext(
            service_account=self.service_account or None,
            key_of_service_account=key,
            project_id=self.project_id or None,
            key_file=key_file
        )


@dataclass
class PollConfig:
    """
    Timeouts and intervals (in seconds) of the status-polling loops.

    Example:
        config = PollConfig(vm_running_timeout=300, poll_interval=5)
    """

    vm_running_timeout: int = 180
    vm_stopping_timeout: int = 180
    disk_creation_timeout: int = 180
    operation_timeout: int = 180

    poll_interval: int = 10
    disk_ready_interval: int = 5


@dataclass
class DatastoreConfig:
    """
    Settings of the Datastore manager.

    suffix_of_kind is appended to kind names by GDSManager.kind_name(),
    which lets several environments share one project.
    """

    suffix_of_kind: str = ''
    page_size: int = 100
    max_workers: int = 4
    namespace: Optional[str] = None


# Default configurations
DEFAULT_POLL_CONFIG = PollConfig()
DEFAULT_DATASTORE_CONFIG = DatastoreConfig()


def create_poll_config(**kwargs) -> PollConfig:
    """
    Create a polling configuration with custom options.

    Args:
        **kwargs: Configuration options (any field from PollConfig)

    Returns:
        PollConfig: Configuration object
    """
    return PollConfig(**kwargs)


def create_datastore_config(**kwargs) -> DatastoreConfig:
    """Create a Datastore configuration with custom options."""
    return DatastoreConfig(**kwargs)


def _build_gcloud_config(data) -> GcloudConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(GcloudConfig)}
    return GcloudConfig(**{k: v for k, v in data.items() if k in known})


def load_gcloud_config(file: IO) -> GcloudConfig:
    """
    Load a JSON config stream into GcloudConfig.

    Args:
        file: Readable text or binary stream

    Returns:
        GcloudConfig

    Raises:
        ConfigError: If the stream isn't valid JSON
    """
    try:
        data = json.load(file)
    except ValueError as e:
        raise ConfigError(f"Invalid config: {e}") from e

    return _build_gcloud_config(data)


def load_config_file(path: Union[str, Path]) -> GcloudConfig:
    """
    Load a config file. Format is picked by extension (.json, .yaml, .yml).

    Example:
        config = load_config_file('~/.pygoo/config.yaml')
        ctx = config.to_app_context()
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(path, 'r') as f:
        if path.suffix in ('.yaml', '.yml'):
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid config: {e}") from e
            return _build_gcloud_config(data)

        return load_gcloud_config(f)
