"""Tests for the Compute Engine manager."""
from unittest.mock import MagicMock, call

import pytest

from pygoo.core.config import PollConfig
from pygoo.core.exceptions import (
    DiskNotFoundError,
    GCEError,
    OperationFailedError,
    OperationTimeoutError,
    SnapshotNotFoundError,
    VMNotFoundError,
)
from pygoo.managers.gce import GCEManager

PROJECT = "my-project"
ZONE = "us-central1-a"


def test_new_vm_waits_until_running(service, no_sleep):
    """new_vm should insert the VM and poll until it is RUNNING."""
    instances = service.instances.return_value
    instances.get.return_value.execute.side_effect = [
        {"status": "PROVISIONING"},
        {"status": "RUNNING"},
    ]

    gce = GCEManager(service)
    gce.new_vm(PROJECT, ZONE, {"name": "web-1"})

    instances.insert.assert_called_once_with(project=PROJECT, zone=ZONE, body={"name": "web-1"})
    instances.get.assert_called_with(project=PROJECT, zone=ZONE, instance="web-1")
    assert no_sleep.call_count == 1


def test_new_vm_timeout(service, fast_poll, no_sleep):
    """new_vm should raise GCEError when the VM never runs."""
    service.instances.return_value.get.return_value.execute.return_value = {"status": "STAGING"}

    gce = GCEManager(service, poll_config=fast_poll)
    with pytest.raises(GCEError, match=r"NewVM timeout: VM\[web-1\]"):
        gce.new_vm(PROJECT, ZONE, {"name": "web-1"})


def test_get_vm_not_found(service, http_error):
    """A 404 from instances.get should become VMNotFoundError."""
    service.instances.return_value.get.return_value.execute.side_effect = http_error(404)

    gce = GCEManager(service)
    with pytest.raises(VMNotFoundError) as exc:
        gce.get_vm(PROJECT, ZONE, "ghost")

    assert exc.value.vm_name == "ghost"
    assert exc.value.status == 404


def test_get_vm_other_errors_keep_status(service, http_error):
    """Other API errors should surface as GCEError with their status."""
    service.instances.return_value.get.return_value.execute.side_effect = http_error(500)

    gce = GCEManager(service)
    with pytest.raises(GCEError) as exc:
        gce.get_vm(PROJECT, ZONE, "web-1")

    assert not isinstance(exc.value, VMNotFoundError)
    assert exc.value.status == 500


def test_probe_vm_running_tolerates_missing_vm(service, http_error, no_sleep):
    """A VM that does not exist yet is polled again instead of failing."""
    service.instances.return_value.get.return_value.execute.side_effect = [
        http_error(404),
        {"status": "STAGING"},
        {"status": "RUNNING"},
    ]

    gce = GCEManager(service)
    assert gce.probe_vm_running(PROJECT, ZONE, "web-1") is True
    assert no_sleep.call_count == 2


def test_start_vm_with_failing_checker(service):
    """start_vm should raise GCEError when the checker reports False."""
    checker = MagicMock(return_value=False)

    gce = GCEManager(service)
    with pytest.raises(GCEError, match="StartVM"):
        gce.start_vm(PROJECT, ZONE, "web-1", checker=checker)

    checker.assert_called_once_with(PROJECT, ZONE, "web-1")
    service.instances.return_value.start.assert_called_once_with(
        project=PROJECT, zone=ZONE, instance="web-1"
    )


def test_stop_vm_default_checker(service, no_sleep):
    """stop_vm should wait for TERMINATED and return the stop operation."""
    instances = service.instances.return_value
    instances.stop.return_value.execute.return_value = {"name": "op-stop"}
    instances.get.return_value.execute.return_value = {"status": "TERMINATED"}

    gce = GCEManager(service)
    assert gce.stop_vm(PROJECT, ZONE, "web-1") == {"name": "op-stop"}
    no_sleep.assert_not_called()


def test_set_machine_type_body(service):
    """set_machine_type should send the zonal machine type path."""
    gce = GCEManager(service)
    gce.set_machine_type(PROJECT, ZONE, "web-1", "n1-standard-4")

    service.instances.return_value.setMachineType.assert_called_once_with(
        project=PROJECT, zone=ZONE, instance="web-1",
        body={"machineType": f"zones/{ZONE}/machineTypes/n1-standard-4"}
    )


def test_attach_tags_keeps_fingerprint_and_dedupes(service):
    """attach_tags should append new tags and pass the current fingerprint."""
    instances = service.instances.return_value
    instances.get.return_value.execute.return_value = {
        "tags": {"items": ["http"], "fingerprint": "fp-1"}
    }

    gce = GCEManager(service)
    gce.attach_tags(PROJECT, ZONE, "web-1", ["http", "https"])

    instances.setTags.assert_called_once_with(
        project=PROJECT, zone=ZONE, instance="web-1",
        body={"items": ["http", "https"], "fingerprint": "fp-1"}
    )


def test_detach_tags(service):
    """detach_tags should remove the given tags."""
    instances = service.instances.return_value
    instances.get.return_value.execute.return_value = {
        "tags": {"items": ["http", "https", "ssh"], "fingerprint": "fp-2"}
    }

    gce = GCEManager(service)
    gce.detach_tags(PROJECT, ZONE, "web-1", ["ssh"])

    body = instances.setTags.call_args.kwargs["body"]
    assert body == {"items": ["http", "https"], "fingerprint": "fp-2"}


def test_add_instances_into_instance_group(service):
    """Instance URLs should be wrapped as {'instance': url}."""
    urls = ["zones/a/instances/web-1", "zones/a/instances/web-2"]

    gce = GCEManager(service)
    gce.add_instances_into_instance_group(PROJECT, ZONE, "web", urls)

    service.instanceGroups.return_value.addInstances.assert_called_once_with(
        project=PROJECT, zone=ZONE, instanceGroup="web",
        body={"instances": [{"instance": urls[0]}, {"instance": urls[1]}]}
    )


def test_list_vms_follows_pages(service):
    """list_vms should return the items of every page."""
    instances = service.instances.return_value
    instances.list.return_value.execute.return_value = {"items": [{"name": "a"}]}
    page2 = MagicMock()
    page2.execute.return_value = {"items": [{"name": "b"}]}
    instances.list_next.side_effect = [page2, None]

    gce = GCEManager(service)
    assert [vm["name"] for vm in gce.list_vms(PROJECT, ZONE)] == ["a", "b"]


def test_new_disk_poll_intervals(service, http_error, no_sleep):
    """Missing disks poll at poll_interval, non-ready ones at disk_ready_interval."""
    disks = service.disks.return_value
    disks.get.return_value.execute.side_effect = [
        http_error(404),
        {"status": "CREATING"},
        {"status": "READY"},
    ]

    gce = GCEManager(service, poll_config=PollConfig(poll_interval=7, disk_ready_interval=3))
    gce.new_disk(PROJECT, ZONE, "data", "global/snapshots/snap-1", 50)

    disks.insert.assert_called_once_with(
        project=PROJECT, zone=ZONE,
        body={"name": "data", "sizeGb": "50", "sourceSnapshot": "global/snapshots/snap-1"}
    )
    assert no_sleep.call_args_list == [call(7), call(3)]


def test_new_disk_timeout(service, fast_poll, no_sleep):
    """new_disk should raise GCEError when the disk never becomes READY."""
    service.disks.return_value.get.return_value.execute.return_value = {"status": "CREATING"}

    gce = GCEManager(service, poll_config=fast_poll)
    with pytest.raises(GCEError, match=r"NewDisk timeout: disk\[data\]"):
        gce.new_disk(PROJECT, ZONE, "data", "snap", 10)


def test_get_disk_not_found(service, http_error):
    service.disks.return_value.get.return_value.execute.side_effect = http_error(404)

    gce = GCEManager(service)
    with pytest.raises(DiskNotFoundError):
        gce.get_disk(PROJECT, ZONE, "ghost")


def test_get_latest_snapshot():
    """The greatest name among the matching snapshots wins."""
    snapshots = [
        {"name": "db-20240103"},
        {"name": "web-20240109"},
        {"name": "db-20240105"},
        {"name": "db-20240101"},
    ]

    gce = GCEManager(MagicMock())
    assert gce.get_latest_snapshot("db-", snapshots) == {"name": "db-20240105"}


def test_get_latest_snapshot_none_match():
    gce = GCEManager(MagicMock())
    with pytest.raises(SnapshotNotFoundError):
        gce.get_latest_snapshot("cache-", [{"name": "db-20240101"}])


def test_get_snapshot_of_disk():
    disk = {"sourceSnapshot": "https://www.googleapis.com/compute/v1/projects/p/global/snapshots/db-1"}

    gce = GCEManager(MagicMock())
    assert gce.get_snapshot_of_disk(disk) == "db-1"


def test_init_vm_from_template_substitutes_zone():
    template = b'{"name": "web", "machineType": "zones/__ZONE__/machineTypes/n1-standard-1"}'

    gce = GCEManager(MagicMock())
    vm = gce.init_vm_from_template(template, ZONE)

    assert vm["machineType"] == f"zones/{ZONE}/machineTypes/n1-standard-1"


def test_init_vm_from_template_malformed():
    gce = GCEManager(MagicMock())
    with pytest.raises(GCEError, match="Invalid VM template"):
        gce.init_vm_from_template('{"name": ', ZONE)


def test_new_instance_template_waits_for_global_operation(service, no_sleep):
    """new_instance_template should poll the global operation until DONE."""
    service.instanceTemplates.return_value.insert.return_value.execute.return_value = {
        "name": "op-1", "status": "PENDING"
    }
    operations = service.globalOperations.return_value
    operations.get.return_value.execute.side_effect = [
        {"name": "op-1", "status": "RUNNING"},
        {"name": "op-1", "status": "DONE"},
    ]

    gce = GCEManager(service)
    op = gce.new_instance_template(PROJECT, {"name": "web-v2"})

    assert op["status"] == "DONE"
    operations.get.assert_called_with(project=PROJECT, operation="op-1")


def test_wait_for_operation_detects_zone(service):
    """A zonal operation should be polled through zoneOperations."""
    zone_ops = service.zoneOperations.return_value
    zone_ops.get.return_value.execute.return_value = {"name": "op-2", "status": "DONE"}

    gce = GCEManager(service)
    gce.wait_for_operation(PROJECT, {
        "name": "op-2",
        "zone": f"https://www.googleapis.com/compute/v1/projects/{PROJECT}/zones/{ZONE}",
    })

    zone_ops.get.assert_called_once_with(project=PROJECT, zone=ZONE, operation="op-2")


def test_wait_for_operation_failed(service):
    service.regionOperations.return_value.get.return_value.execute.return_value = {
        "name": "op-3",
        "status": "DONE",
        "error": {"errors": [{"code": "QUOTA_EXCEEDED", "message": "Quota exceeded"}]},
    }

    gce = GCEManager(service)
    with pytest.raises(OperationFailedError, match="Quota exceeded"):
        gce.wait_for_operation(PROJECT, "op-3", region="us-central1")


def test_wait_for_operation_timeout(service, fast_poll, no_sleep):
    service.globalOperations.return_value.get.return_value.execute.return_value = {
        "name": "op-4", "status": "RUNNING"
    }

    gce = GCEManager(service, poll_config=fast_poll)
    with pytest.raises(OperationTimeoutError):
        gce.wait_for_operation(PROJECT, "op-4")


def test_get_ips():
    vm = {
        "name": "web-1",
        "networkInterfaces": [{
            "networkIP": "10.0.0.2",
            "accessConfigs": [{"natIP": "34.1.2.3"}],
        }],
    }

    gce = GCEManager(MagicMock())
    assert gce.get_nat_ip(vm) == "34.1.2.3"
    assert gce.get_network_ip(vm) == "10.0.0.2"


def test_get_ips_missing():
    gce = GCEManager(MagicMock())
    assert gce.get_nat_ip(None) == "missing"
    assert gce.get_network_ip(None) == "missing"
    assert gce.get_nat_ip({"networkInterfaces": [{"accessConfigs": []}]}) == "missing"


def test_patch_instance_machine_type():
    gce = GCEManager(MagicMock())
    uri = "projects/p/zones/us-central1-a/machineTypes/n1-standard-1"
    assert gce.patch_instance_machine_type(uri, "n1-highmem-2") == (
        "projects/p/zones/us-central1-a/machineTypes/n1-highmem-2"
    )
