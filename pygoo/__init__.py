"""pygoo - Convenience wrappers around Google Cloud APIs.

Managers for Compute Engine, Datastore, Cloud SQL, Cloud Monitoring,
Pub/Sub, Cloud Storage and managed instance group rolling updates, all
built from one AppContext.

Example usage:
    >>> from pygoo import AppContext, new
    >>> goo = new(AppContext(key_file='key.json', project_id='my-project'))
    >>> goo.gce.list_vms('my-project', 'us-central1-a')
"""

from pygoo.core.config import VERSION, AppContext, DatastoreConfig, PollConfig
from pygoo.core.exceptions import PyGooError
from pygoo.main import PyGoo, new

__version__ = VERSION

__all__ = [
    'AppContext',
    'DatastoreConfig',
    'PollConfig',
    'PyGoo',
    'PyGooError',
    'new',
]
