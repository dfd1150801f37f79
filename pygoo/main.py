"""
pygoo - Main Entry Point

PyGoo bundles one manager per Google Cloud API behind a single object
built from an AppContext. Each manager (and its discovery client) is
created on first use.

Usage:
    from pygoo import AppContext, new

    goo = new(AppContext(
        service_account='robot@my-project.iam.gserviceaccount.com',
        key_of_service_account=open('key.pem', 'rb').read(),
        project_id='my-project'
    ))

    vm = goo.gce.get_vm('my-project', 'us-central1-a', 'my-vm')
    cpu = goo.monitor.get_avg_cpu_utilization('my-project', 'my-vm')
"""

from typing import Optional

from pygoo.core.auth import (
    AuthManager,
    COMPUTE_SCOPES,
    DATASTORE_SCOPES,
    MONITORING_SCOPES,
    PUBSUB_SCOPES,
    SQLADMIN_SCOPES,
    STORAGE_SCOPES,
)
from pygoo.core.config import AppContext, DatastoreConfig, PollConfig
from pygoo.managers import (
    CloudSQLManager,
    GCEManager,
    GDSManager,
    MonitoringManager,
    PubSubManager,
    RollingUpdateManager,
    StorageManager,
)
from pygoo.utils.logger import get_logger


class PyGoo:
    """
    Facade over all pygoo managers.

    Attributes (built lazily):
        gce: GCEManager
        gds: GDSManager
        monitor: MonitoringManager
        cloud_sql: CloudSQLManager
        rolling_update: RollingUpdateManager
        pubsub: PubSubManager
        storage: StorageManager
    """

    def __init__(self, ctx: AppContext, auth: Optional[AuthManager] = None,
                 poll_config: Optional[PollConfig] = None,
                 datastore_config: Optional[DatastoreConfig] = None):
        self.ctx = ctx
        self.auth = auth or AuthManager.from_app_context(ctx)
        self.poll_config = poll_config
        self.datastore_config = datastore_config
        self.logger = get_logger()
        self._managers = {}

    def _manager(self, name, factory):
        if name not in self._managers:
            self.logger.debug(f"Building {name} manager")
            self._managers[name] = factory()
        return self._managers[name]

    @property
    def project_id(self) -> str:
        return self.ctx.project_id or self.auth.get_project()

    @property
    def gce(self) -> GCEManager:
        return self._manager('gce', lambda: GCEManager(
            self.auth.build_service('compute', 'v1', COMPUTE_SCOPES),
            poll_config=self.poll_config, logger=self.logger
        ))

    @property
    def gds(self) -> GDSManager:
        return self._manager('gds', lambda: GDSManager(
            self.auth.build_service('datastore', 'v1', DATASTORE_SCOPES),
            self.project_id, config=self.datastore_config, logger=self.logger
        ))

    @property
    def monitor(self) -> MonitoringManager:
        return self._manager('monitor', lambda: MonitoringManager(
            self.auth.build_service('monitoring', 'v3', MONITORING_SCOPES),
            logger=self.logger
        ))

    @property
    def cloud_sql(self) -> CloudSQLManager:
        return self._manager('cloud_sql', lambda: CloudSQLManager(
            self.auth.build_service('sqladmin', 'v1beta4', SQLADMIN_SCOPES),
            logger=self.logger
        ))

    @property
    def rolling_update(self) -> RollingUpdateManager:
        return self._manager('rolling_update', lambda: RollingUpdateManager(
            self.auth.build_service('compute', 'v1', COMPUTE_SCOPES),
            poll_config=self.poll_config, logger=self.logger
        ))

    @property
    def pubsub(self) -> PubSubManager:
        return self._manager('pubsub', lambda: PubSubManager(
            self.auth.build_service('pubsub', 'v1', PUBSUB_SCOPES),
            logger=self.logger
        ))

    @property
    def storage(self) -> StorageManager:
        return self._manager('storage', lambda: StorageManager(
            self.auth.build_service('storage', 'v1', STORAGE_SCOPES),
            logger=self.logger
        ))


def new(ctx: AppContext, **kwargs) -> PyGoo:
    """
    Build a PyGoo from an AppContext.

    Args:
        ctx: Service account credentials and project
        **kwargs: auth, poll_config, datastore_config

    Returns:
        PyGoo
    """
    return PyGoo(ctx, **kwargs)
