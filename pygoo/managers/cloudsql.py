"""
pygoo - Cloud SQL Manager

Authorized networks (ACL entries) of Cloud SQL instances.

https://cloud.google.com/sql/docs/mysql/admin-api/rest/v1beta4/instances
"""

from typing import Any, Callable, Dict, List

from pygoo.core.exceptions import CloudSQLError
from pygoo.managers.base import BaseManager


def _authorized_networks(instance: Dict[str, Any]) -> List[Dict[str, Any]]:
    return (instance.get('settings', {})
            .get('ipConfiguration', {})
            .get('authorizedNetworks', []))


class CloudSQLManager(BaseManager):
    """Low level communication with the Cloud SQL admin API."""

    error_class = CloudSQLError

    def get_database(self, project_id: str, db_name: str) -> Dict[str, Any]:
        """Get the database instance."""
        self.logger.debug(f"GetDatabase: project[{project_id}], db[{db_name}]")

        instance = self._execute(
            self.service.instances().get(project=project_id, instance=db_name),
            'sql.instances.get', project=project_id, instance=db_name
        )

        for entry in _authorized_networks(instance):
            self.logger.debug(f"Authorized network: {entry}")

        return instance

    def patch_acl_entries_of_database(self, project_id: str, db_name: str,
                                      entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Replace the authorized networks of the database instance.

        Args:
            entries: ACL entries, e.g. {'name': 'office', 'value': '203.0.113.0/24'}

        Returns:
            The patch operation
        """
        self.logger.debug(f"PatchAclEntriesOfDatabase: project[{project_id}], db[{db_name}]")

        instance = self.get_database(project_id, db_name)
        ip_configuration = instance.setdefault('settings', {}).setdefault('ipConfiguration', {})
        ip_configuration['authorizedNetworks'] = entries

        return self._execute(
            self.service.instances().patch(project=project_id, instance=db_name, body=instance),
            'sql.instances.patch', project=project_id, instance=db_name, entries=len(entries)
        )

    def get_filtered_acl_entries_of_database(self, project_id: str, db_name: str,
                                             not_contain: Callable[[str], bool]
                                             ) -> List[Dict[str, Any]]:
        """Get the ACL entries whose name satisfies not_contain."""
        self.logger.debug(f"GetFilteredAclEntriesOfDatabase: project[{project_id}], db[{db_name}]")

        instance = self.get_database(project_id, db_name)
        return [entry for entry in _authorized_networks(instance)
                if not_contain(entry.get('name', ''))]
