"""
pygoo - Rolling Update Manager

Rolling updates of managed instance groups: moving a group to a new
instance template and waiting until every instance runs it.

https://cloud.google.com/compute/docs/reference/rest/v1/instanceGroupManagers
"""

from typing import Any, Dict, List, Optional

from pygoo.core.config import DEFAULT_POLL_CONFIG, PollConfig
from pygoo.core.exceptions import RollingUpdateError
from pygoo.managers.base import BaseManager
from pygoo.utils.polling import wait_for_status

STABLE = 'STABLE'
UPDATING = 'UPDATING'

DEFAULT_UPDATE_POLICY = {
    'type': 'PROACTIVE',
    'minimalAction': 'REPLACE',
}


def template_url(project_id: str, instance_template: str) -> str:
    """Expand a bare template name into its global resource path."""
    if '/' in instance_template:
        return instance_template
    return f"projects/{project_id}/global/instanceTemplates/{instance_template}"


class RollingUpdateManager(BaseManager):
    """
    Starts, inspects and rolls back rolling updates of managed instance groups.

    Example:
        rum = RollingUpdateManager(compute)
        rum.insert('my-project', 'us-central1-a', {
            'instanceGroupManager': 'web',
            'instanceTemplate': 'web-v2',
        })
        rum.wait_until_stable('my-project', 'us-central1-a', 'web')
    """

    error_class = RollingUpdateError

    def __init__(self, service, poll_config: Optional[PollConfig] = None, logger=None):
        super().__init__(service, logger)
        self.poll_config = poll_config or DEFAULT_POLL_CONFIG

    def _patch(self, project_id: str, zone: str, group: str, instance_template: str,
               update_policy: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            'versions': [{'instanceTemplate': template_url(project_id, instance_template)}],
            'updatePolicy': update_policy,
        }
        try:
            return self._execute(
                self.service.instanceGroupManagers().patch(
                    project=project_id, zone=zone, instanceGroupManager=group, body=body
                ),
                'instanceGroupManagers.patch', project=project_id, zone=zone,
                instance_group_manager=group, instance_template=instance_template
            )
        except RollingUpdateError as e:
            self.logger.warning(f"Error: {e}")
            raise

    def insert(self, project_id: str, zone: str, rolling_update: Dict[str, Any]) -> Dict[str, Any]:
        """
        Start a rolling update of the instances in a managed instance group.

        Args:
            rolling_update: {'instanceGroupManager': group name,
                             'instanceTemplate': template name or URL,
                             'updatePolicy': optional, proactive REPLACE by default}

        Returns:
            The patch operation
        """
        self.logger.debug(f"Insert: project[{project_id}], zone[{zone}]")

        try:
            group = rolling_update['instanceGroupManager']
            instance_template = rolling_update['instanceTemplate']
        except KeyError as e:
            raise RollingUpdateError(f"RollingUpdate Error: missing {e.args[0]}") from e

        update_policy = rolling_update.get('updatePolicy') or DEFAULT_UPDATE_POLICY
        return self._patch(project_id, zone, group, instance_template, dict(update_policy))

    def list(self, project_id: str, zone: str) -> List[Dict[str, Any]]:
        """List the managed instance groups of a zone with their update status."""
        self.logger.debug(f"List: project[{project_id}], zone[{zone}]")
        return list(self._paginate(
            self.service.instanceGroupManagers(), 'instanceGroupManagers.list',
            project=project_id, zone=zone
        ))

    def get(self, project_id: str, zone: str, name: str) -> Dict[str, Any]:
        return self._execute(
            self.service.instanceGroupManagers().get(
                project=project_id, zone=zone, instanceGroupManager=name
            ),
            'instanceGroupManagers.get', project=project_id, zone=zone,
            instance_group_manager=name
        )

    def rollback(self, project_id: str, zone: str, name: str,
                 instance_template: str) -> Dict[str, Any]:
        """
        Roll a managed instance group back to a previous instance template.

        Returns:
            The patch operation
        """
        self.logger.debug(
            f"Rollback: project[{project_id}], zone[{zone}], group[{name}], "
            f"template[{instance_template}]"
        )
        return self._patch(project_id, zone, name, instance_template, dict(DEFAULT_UPDATE_POLICY))

    def wait_until_stable(self, project_id: str, zone: str, name: str,
                          timeout: Optional[float] = None) -> bool:
        """
        Block until the group reports status.isStable.

        Returns:
            True if stable, False on timeout
        """
        def get_status():
            group = self.get(project_id, zone, name)
            return STABLE if group.get('status', {}).get('isStable') else UPDATING

        return wait_for_status(
            get_status, STABLE,
            timeout=self.poll_config.operation_timeout if timeout is None else timeout,
            interval=self.poll_config.poll_interval,
            description=f"instance group manager {name}",
            logger=self.logger
        )
