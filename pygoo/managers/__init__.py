"""Managers package: one manager per Google Cloud API."""

from .base import BaseManager
from .cloudsql import CloudSQLManager
from .gce import GCEManager
from .gds import GDSManager, Page
from .monitoring import MonitoringManager
from .pubsub import PubSubManager
from .rolling_update import RollingUpdateManager
from .storage import StorageManager

__all__ = [
    'BaseManager',
    'CloudSQLManager',
    'GCEManager',
    'GDSManager',
    'MonitoringManager',
    'Page',
    'PubSubManager',
    'RollingUpdateManager',
    'StorageManager',
]
