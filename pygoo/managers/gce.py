"""
pygoo - Compute Engine Manager

VMs, disks, snapshots, instance templates and the polling loops that wait
for them to reach RUNNING / TERMINATED / READY.

https://cloud.google.com/compute/docs/reference/rest/v1
"""

import json
from typing import Any, Callable, Dict, List, Optional, Union

from pygoo.core.config import DEFAULT_POLL_CONFIG, PollConfig
from pygoo.core.exceptions import (
    DiskNotFoundError,
    GCEError,
    SnapshotNotFoundError,
    VMNotFoundError,
)
from pygoo.managers.base import BaseManager
from pygoo.utils.helpers import get_last_split
from pygoo.utils.polling import wait_for_operation, wait_for_status

# Returns True when the condition inside the VM holds: (project_id, zone, vm_name) -> bool
VMConditionChecker = Callable[[str, str, str], bool]

ZONE_PLACEHOLDER = '__ZONE__'
MISSING = 'missing'


class GCEManager(BaseManager):
    """
    Low level communication with Google Compute Engine.

    Example:
        gce = GCEManager(compute, logger=logger)
        gce.new_vm('my-project', 'us-central1-a', vm_body)   # blocks until RUNNING
        ip = gce.get_nat_ip(gce.get_vm('my-project', 'us-central1-a', 'my-vm'))
    """

    error_class = GCEError

    def __init__(self, service, poll_config: Optional[PollConfig] = None, logger=None):
        super().__init__(service, logger)
        self.poll_config = poll_config or DEFAULT_POLL_CONFIG

    # VMs

    def new_vm(self, project_id: str, zone: str, vm: Dict[str, Any]) -> None:
        """
        Create a new VM.

        Blocks till the status of the created VM is RUNNING, or raises
        GCEError once `vm_running_timeout` has passed.
        """
        self.logger.debug(f"New VM: project[{project_id}], zone[{zone}]")

        self._execute(
            self.service.instances().insert(project=project_id, zone=zone, body=vm),
            'instances.insert', project=project_id, zone=zone, instance=vm.get('name')
        )

        if not self.probe_vm_running(project_id, zone, vm['name']):
            raise GCEError(f"NewVM timeout: VM[{vm['name']}]")

    def get_vm(self, project_id: str, zone: str, vm_name: str) -> Dict[str, Any]:
        """
        Get a VM.

        Raises:
            VMNotFoundError: If the VM doesn't exist
        """
        try:
            return self._execute(
                self.service.instances().get(project=project_id, zone=zone, instance=vm_name),
                'instances.get', project=project_id, zone=zone, instance=vm_name
            )
        except GCEError as e:
            if e.status == 404:
                raise VMNotFoundError(vm_name, zone, project_id) from e
            raise

    def delete_vm(self, project_id: str, zone: str, vm_name: str) -> Dict[str, Any]:
        """Delete a VM. Returns the operation without waiting for it."""
        return self._execute(
            self.service.instances().delete(project=project_id, zone=zone, instance=vm_name),
            'instances.delete', project=project_id, zone=zone, instance=vm_name
        )

    def start_vm(self, project_id: str, zone: str, vm_name: str,
                 checker: Optional[VMConditionChecker] = None) -> Dict[str, Any]:
        """
        Start a VM.

        Args:
            checker: Checks if the VM is successfully started. Defaults to
                     waiting for the RUNNING status.

        Returns:
            The start operation
        """
        op = self._execute(
            self.service.instances().start(project=project_id, zone=zone, instance=vm_name),
            'instances.start', project=project_id, zone=zone, instance=vm_name
        )

        checker = checker or self.probe_vm_running
        if not checker(project_id, zone, vm_name):
            raise GCEError(f"StartVM condition check failed: VM[{vm_name}]")

        return op

    def stop_vm(self, project_id: str, zone: str, vm_name: str,
                checker: Optional[VMConditionChecker] = None) -> Dict[str, Any]:
        """
        Stop a VM.

        Args:
            checker: Checks if the VM is successfully stopped. Defaults to
                     waiting for the TERMINATED status.

        Returns:
            The stop operation
        """
        op = self._execute(
            self.service.instances().stop(project=project_id, zone=zone, instance=vm_name),
            'instances.stop', project=project_id, zone=zone, instance=vm_name
        )

        checker = checker or self.probe_vm_stopped
        if not checker(project_id, zone, vm_name):
            raise GCEError(f"StopVM condition check failed: VM[{vm_name}]")

        return op

    def set_machine_type(self, project_id: str, zone: str, vm_name: str,
                         machine_type: str) -> Dict[str, Any]:
        """Change the machine type of a stopped instance."""
        body = {'machineType': f"zones/{zone}/machineTypes/{machine_type}"}

        return self._execute(
            self.service.instances().setMachineType(
                project=project_id, zone=zone, instance=vm_name, body=body
            ),
            'instances.setMachineType', project=project_id, zone=zone,
            instance=vm_name, machine_type=machine_type
        )

    def reset_instance(self, project_id: str, zone: str, vm_name: str) -> Dict[str, Any]:
        """Reset an instance."""
        return self._execute(
            self.service.instances().reset(project=project_id, zone=zone, instance=vm_name),
            'instances.reset', project=project_id, zone=zone, instance=vm_name
        )

    def list_vms(self, project_id: str, zone: str) -> List[Dict[str, Any]]:
        """List all VMs of a zone."""
        return list(self._paginate(
            self.service.instances(), 'instances.list', project=project_id, zone=zone
        ))

    def list_images(self, project_id: str) -> List[Dict[str, Any]]:
        """List all images of a project."""
        return list(self._paginate(
            self.service.images(), 'images.list', project=project_id
        ))

    def _adjust_tags(self, project_id: str, zone: str, vm_name: str, tags: List[str],
                     new_tags_generator: Callable[[List[str], List[str]], List[str]]) -> Dict[str, Any]:
        vm = self.get_vm(project_id, zone, vm_name)
        current = vm.get('tags', {})

        body = {
            'items': new_tags_generator(current.get('items', []), tags),
            'fingerprint': current.get('fingerprint'),
        }

        return self._execute(
            self.service.instances().setTags(
                project=project_id, zone=zone, instance=vm_name, body=body
            ),
            'instances.setTags', project=project_id, zone=zone, instance=vm_name,
            tags=body['items']
        )

    def attach_tags(self, project_id: str, zone: str, vm_name: str,
                    added_tags: List[str]) -> Dict[str, Any]:
        """Attach network tags onto a VM. Tags already present are kept once."""
        self.logger.debug(f"AttachTags: vm[{vm_name}], addedTags[{added_tags}]")

        def attacher(src, new):
            return src + [tag for tag in new if tag not in src]

        return self._adjust_tags(project_id, zone, vm_name, added_tags, attacher)

    def detach_tags(self, project_id: str, zone: str, vm_name: str,
                    removed_tags: List[str]) -> Dict[str, Any]:
        """Detach network tags from a VM."""
        self.logger.debug(f"DetachTags: vm[{vm_name}], removedTags[{removed_tags}]")

        def detacher(src, remove):
            return [tag for tag in src if tag not in remove]

        return self._adjust_tags(project_id, zone, vm_name, removed_tags, detacher)

    def add_instances_into_instance_group(self, project_id: str, zone: str,
                                          instance_group_name: str,
                                          instances: List[str]) -> Dict[str, Any]:
        """
        Add instances into an unmanaged instance group.

        Args:
            instances: Instance URLs
        """
        body = {'instances': [{'instance': instance} for instance in instances]}

        return self._execute(
            self.service.instanceGroups().addInstances(
                project=project_id, zone=zone,
                instanceGroup=instance_group_name, body=body
            ),
            'instanceGroups.addInstances', project=project_id, zone=zone,
            instance_group=instance_group_name, instances=instances
        )

    # Disks and snapshots

    def list_disks(self, project_id: str, zone: str) -> List[Dict[str, Any]]:
        """List all disks of a zone."""
        return list(self._paginate(
            self.service.disks(), 'disks.list', project=project_id, zone=zone
        ))

    def new_disk(self, project_id: str, zone: str, name: str, source_snapshot: str,
                 size_gb: int) -> None:
        """
        Create a new disk from a snapshot.

        Blocks till the disk is READY, or raises GCEError once
        `disk_creation_timeout` has passed.
        """
        self.logger.debug(
            f"New disk: project[{project_id}], zone[{zone}], name[{name}], "
            f"sourceSnapshot[{source_snapshot}]"
        )

        body = {
            'name': name,
            'sizeGb': str(size_gb),
            'sourceSnapshot': source_snapshot,
        }
        self._execute(
            self.service.disks().insert(project=project_id, zone=zone, body=body),
            'disks.insert', project=project_id, zone=zone, disk=name
        )

        if not self.probe_disk_creation(project_id, zone, name):
            raise GCEError(f"NewDisk timeout: disk[{name}]")

    def get_disk(self, project_id: str, zone: str, disk_name: str) -> Dict[str, Any]:
        """
        Get a disk.

        Raises:
            DiskNotFoundError: If the disk doesn't exist
        """
        try:
            return self._execute(
                self.service.disks().get(project=project_id, zone=zone, disk=disk_name),
                'disks.get', project=project_id, zone=zone, disk=disk_name
            )
        except GCEError as e:
            if e.status == 404:
                raise DiskNotFoundError(disk_name, zone, project_id) from e
            raise

    def delete_disk(self, project_id: str, zone: str, disk_name: str) -> Dict[str, Any]:
        """Delete a disk. Returns the operation without waiting for it."""
        return self._execute(
            self.service.disks().delete(project=project_id, zone=zone, disk=disk_name),
            'disks.delete', project=project_id, zone=zone, disk=disk_name
        )

    def get_snapshots(self, project_id: str) -> List[Dict[str, Any]]:
        """Get all snapshots of the project."""
        snapshots = list(self._paginate(
            self.service.snapshots(), 'snapshots.list', project=project_id
        ))

        for snapshot in snapshots:
            self.logger.debug(f"snapshot: id[{snapshot.get('id')}], name[{snapshot.get('name')}]")

        return snapshots

    def get_snapshot(self, project_id: str, snapshot: str) -> Dict[str, Any]:
        """Get a specific snapshot."""
        return self._execute(
            self.service.snapshots().get(project=project_id, snapshot=snapshot),
            'snapshots.get', project=project_id, snapshot=snapshot
        )

    def get_latest_snapshot(self, prefix: str, snapshots: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Get the snapshot with the greatest name among those containing `prefix`.

        Snapshot names are expected to carry a sortable timestamp suffix,
        e.g. 'db-backup-20240105'.

        Raises:
            SnapshotNotFoundError: If no snapshot name contains prefix
        """
        filtered = sorted(
            (s for s in snapshots if prefix in s.get('name', '')),
            key=lambda s: s['name']
        )

        if not filtered:
            self.logger.warning("No snapshot found")
            raise SnapshotNotFoundError(prefix)

        result = filtered[-1]
        self.logger.debug(f"Latest snapshot found: name[{result['name']}]")
        return result

    def get_snapshot_of_disk(self, disk: Dict[str, Any]) -> str:
        """Get the snapshot name the disk was created from."""
        source_snapshot = disk.get('sourceSnapshot', '')
        self.logger.debug(f"Snapshot of the disk: snapshot[{source_snapshot}]")

        return get_last_split(source_snapshot, '/')

    # Instance templates and operations

    def init_vm_from_template(self, template_file: Union[bytes, str], zone: str) -> Dict[str, Any]:
        """
        Build a VM body from a JSON template.

        Every __ZONE__ marker in the template is replaced by `zone`.

        Raises:
            GCEError: If the rendered template isn't valid JSON
        """
        if isinstance(template_file, bytes):
            template_file = template_file.decode('utf-8')

        rendered = template_file.replace(ZONE_PLACEHOLDER, zone)

        try:
            return json.loads(rendered)
        except ValueError as e:
            raise GCEError(f"Invalid VM template: {e}") from e

    def new_instance_template(self, project_id: str, template: Dict[str, Any],
                              timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Create an instance template and block until its creation is DONE.

        Returns:
            The finished global operation
        """
        self.logger.debug(f"New instance template: project[{project_id}], name[{template.get('name')}]")

        op = self._execute(
            self.service.instanceTemplates().insert(project=project_id, body=template),
            'instanceTemplates.insert', project=project_id, template=template.get('name')
        )

        op = self.wait_for_operation(project_id, op, timeout=timeout)
        self.logger.info(f"Instance template created!: name[{template.get('name')}]")
        return op

    def get_instance_template(self, project_id: str, name: str) -> Dict[str, Any]:
        """Get an instance template."""
        return self._execute(
            self.service.instanceTemplates().get(project=project_id, instanceTemplate=name),
            'instanceTemplates.get', project=project_id, instance_template=name
        )

    def delete_instance_template(self, project_id: str, name: str) -> Dict[str, Any]:
        """Delete an instance template."""
        return self._execute(
            self.service.instanceTemplates().delete(project=project_id, instanceTemplate=name),
            'instanceTemplates.delete', project=project_id, instance_template=name
        )

    def list_instance_templates(self, project_id: str) -> List[Dict[str, Any]]:
        """List all instance templates of a project."""
        return list(self._paginate(
            self.service.instanceTemplates(), 'instanceTemplates.list', project=project_id
        ))

    def wait_for_operation(self, project_id: str, operation: Union[Dict[str, Any], str],
                           zone: Optional[str] = None, region: Optional[str] = None,
                           timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for a zone, region or global operation to be DONE.

        The scope is read from the operation's own zone/region field when
        not given.

        Raises:
            OperationFailedError: If the operation finishes with an error
            OperationTimeoutError: If it doesn't finish in time
        """
        if isinstance(operation, dict):
            name = operation['name']
            if zone is None and operation.get('zone'):
                zone = get_last_split(operation['zone'], '/')
            if region is None and operation.get('region'):
                region = get_last_split(operation['region'], '/')
        else:
            name = operation

        def get_operation():
            if zone:
                request = self.service.zoneOperations().get(
                    project=project_id, zone=zone, operation=name)
                action = 'zoneOperations.get'
            elif region:
                request = self.service.regionOperations().get(
                    project=project_id, region=region, operation=name)
                action = 'regionOperations.get'
            else:
                request = self.service.globalOperations().get(
                    project=project_id, operation=name)
                action = 'globalOperations.get'

            return self._execute(request, action, project=project_id, operation=name)

        return wait_for_operation(
            get_operation,
            timeout=timeout if timeout is not None else self.poll_config.operation_timeout,
            interval=self.poll_config.poll_interval,
            description=f"operation[{name}]",
            logger=self.logger
        )

    # Probes

    def probe_vm_running(self, project_id: str, zone: str, vm_name: str) -> bool:
        """Probe the VM status till it is RUNNING. Returns False on timeout."""
        running = wait_for_status(
            lambda: self.get_vm(project_id, zone, vm_name)['status'],
            'RUNNING',
            timeout=self.poll_config.vm_running_timeout,
            interval=self.poll_config.poll_interval,
            description=f"VM[{vm_name}]",
            logger=self.logger
        )

        if running:
            self.logger.info(f"VM Running!: VM[{vm_name}]")
        else:
            self.logger.warning(f"VM creation Timeout: VM[{vm_name}]")
        return running

    def probe_vm_stopped(self, project_id: str, zone: str, vm_name: str) -> bool:
        """Probe the VM status till it is TERMINATED. Returns False on timeout."""
        stopped = wait_for_status(
            lambda: self.get_vm(project_id, zone, vm_name)['status'],
            'TERMINATED',
            timeout=self.poll_config.vm_stopping_timeout,
            interval=self.poll_config.poll_interval,
            description=f"VM[{vm_name}]",
            logger=self.logger
        )

        if stopped:
            self.logger.info(f"VM Stopped!: VM[{vm_name}]")
        else:
            self.logger.warning(f"VM stop Timeout: VM[{vm_name}]")
        return stopped

    def probe_disk_creation(self, project_id: str, zone: str, disk_name: str) -> bool:
        """Probe the disk status till it is READY. Returns False on timeout."""
        ready = wait_for_status(
            lambda: self.get_disk(project_id, zone, disk_name)['status'],
            'READY',
            timeout=self.poll_config.disk_creation_timeout,
            interval=self.poll_config.disk_ready_interval,
            missing_interval=self.poll_config.poll_interval,
            description=f"disk[{disk_name}]",
            logger=self.logger
        )

        if ready:
            self.logger.info(f"Disk Created!: name[{disk_name}]")
        else:
            self.logger.warning(f"Disk creation Timeout: disk[{disk_name}]")
        return ready

    # Instance helpers

    def get_nat_ip(self, vm: Optional[Dict[str, Any]]) -> str:
        """Get the external (NAT) IP of the VM's first network interface."""
        if vm is None:
            return MISSING

        try:
            nat_ip = vm['networkInterfaces'][0]['accessConfigs'][0]['natIP']
        except (KeyError, IndexError):
            return MISSING

        self.logger.debug(f"Got NatIP: VM[{vm.get('name')}], ip[{nat_ip}]")
        return nat_ip

    def get_network_ip(self, vm: Optional[Dict[str, Any]]) -> str:
        """Get the internal IP of the VM's first network interface."""
        if vm is None:
            return MISSING

        try:
            network_ip = vm['networkInterfaces'][0]['networkIP']
        except (KeyError, IndexError):
            return MISSING

        self.logger.debug(f"Got NetworkIP: VM[{vm.get('name')}], ip[{network_ip}]")
        return network_ip

    def patch_instance_machine_type(self, machine_type_uri: str, target_type: str) -> str:
        """Replace the last segment of a machine type URI with target_type."""
        parts = machine_type_uri.split('/')
        parts[-1] = target_type
        return '/'.join(parts)
