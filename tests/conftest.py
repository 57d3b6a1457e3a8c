#
# tests/conftest.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
"""
Pytest configuration and shared fixtures.
"""
import concurrent.futures
import threading

import pytest

import azimage
from azimage.btypes import OperationStatus
from azimage.records import (AvailabilitySetRecord,
                             ImageRecord,
                             ResourceDefinition,
                             ResourceGroupEntry,
                             SecurityGroupRecord,
                             VmRecord,
                            )
from azimage.resource_groups import ResourceGroupResolver
from azimage.waiters import Waiters
from azimage.image_extension import ImageExtension

SUBSCRIPTION_ID = '11111111-1111-1111-1111-111111111111'

class FakeClock():
    """Monotonic clock that only advances when something sleeps."""
    def __init__(self):
        self.now = 0.0
        self.sleeps = list()
        self._lock = threading.Lock()

    def monotonic(self):
        with self._lock:
            return self.now

    def sleep(self, secs):
        with self._lock:
            self.sleeps.append(secs)
            self.now += secs

class FakeControlPlane():
    """
    In-memory control plane. Records every call in self.calls as
    (method_name, args). Set self.fail[method_name] to an exception
    to raise it from that method.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self.calls = list()
        self.fail = dict()
        self.resource_groups = dict()  # name -> ResourceGroupEntry
        self.vms = dict()  # (rg, name) -> VmRecord
        self.images = dict()  # (rg, name) -> ImageRecord
        self.nsgs = dict()  # (rg, name) -> SecurityGroupRecord
        self.availability_sets = dict()  # (rg, name) -> AvailabilitySetRecord
        self.operation_statuses = dict()  # uri -> list of OperationStatus; the last one repeats
        self.capture_definitions = [ResourceDefinition(name='osdisk', type='Microsoft.Compute/images')]
        self.capture_uri = 'https://management.example/operations/capture-1'
        self.delete_uri = 'https://management.example/operations/delete-1'
        self.suspend_on_stop = True
        self.image_provisioning_state = 'Succeeded'
        self.rg_create_gate = None  # threading.Event; resource_group_create blocks on it

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name, args))
        exc = self.fail.get(name, None)
        if exc is not None:
            raise exc

    def call_names(self):
        with self._lock:
            return [x[0] for x in self.calls]

    def call_count(self, name):
        return self.call_names().count(name)

    def add_vm(self, resource_group, name, location='eastus', power_state='PowerState/running'):
        vm = VmRecord(id="/subscriptions/%s/resourceGroups/%s/providers/Microsoft.Compute/virtualMachines/%s" % (SUBSCRIPTION_ID, resource_group, name),
                      name=name,
                      location=location,
                      power_state=power_state,
                      provisioning_state='Succeeded')
        self.vms[(resource_group, name)] = vm
        return vm

    def vm_get(self, resource_group, vm_name):
        self._record('vm_get', resource_group, vm_name)
        return self.vms.get((resource_group, vm_name), None)

    def vm_stop(self, resource_group, vm_name):
        self._record('vm_stop', resource_group, vm_name)
        vm = self.vms[(resource_group, vm_name)]
        if self.suspend_on_stop:
            vm.power_state = 'PowerState/stopped'
        return None

    def vm_generalize(self, resource_group, vm_name):
        self._record('vm_generalize', resource_group, vm_name)

    def vm_capture(self, resource_group, vm_name, vhd_prefix, container_name):
        self._record('vm_capture', resource_group, vm_name, vhd_prefix, container_name)
        return self.capture_uri

    def operation_status(self, uri):
        self._record('operation_status', uri)
        statuses = self.operation_statuses.get(uri, [OperationStatus.SUCCEEDED])
        if len(statuses) > 1:
            return statuses.pop(0)
        return statuses[0]

    def capture_status(self, uri):
        self._record('capture_status', uri)
        return list(self.capture_definitions)

    def image_create(self, resource_group, image_name, location, source_vm_id):
        self._record('image_create', resource_group, image_name, location, source_vm_id)
        image = ImageRecord(id="/subscriptions/%s/resourceGroups/%s/providers/Microsoft.Compute/images/%s" % (SUBSCRIPTION_ID, resource_group, image_name),
                            name=image_name,
                            location=location,
                            source_vm_id=source_vm_id,
                            provisioning_state=self.image_provisioning_state,
                            tags=dict())
        self.images[(resource_group, image_name)] = image
        return image

    def image_get(self, resource_group, image_name):
        self._record('image_get', resource_group, image_name)
        return self.images.get((resource_group, image_name), None)

    def image_list(self, resource_group):
        self._record('image_list', resource_group)
        return [v for (rg, _), v in sorted(self.images.items()) if rg == resource_group]

    def image_delete(self, resource_group, image_name):
        self._record('image_delete', resource_group, image_name)
        if self.images.pop((resource_group, image_name), None) is None:
            return None
        return self.delete_uri

    def nsg_create_or_update(self, resource_group, nsg_name, location, tags, rules):
        self._record('nsg_create_or_update', resource_group, nsg_name, location, tags, rules)
        nsg = SecurityGroupRecord(id="/subscriptions/%s/resourceGroups/%s/providers/Microsoft.Network/networkSecurityGroups/%s" % (SUBSCRIPTION_ID, resource_group, nsg_name),
                                  name=nsg_name,
                                  location=location,
                                  tags=dict(tags),
                                  rules=list(rules))
        self.nsgs[(resource_group, nsg_name)] = nsg
        return nsg

    def resource_group_get(self, resource_group):
        self._record('resource_group_get', resource_group)
        return self.resource_groups.get(resource_group, None)

    def resource_group_create(self, resource_group, location, tags=None):
        self._record('resource_group_create', resource_group, location, tags)
        if self.rg_create_gate is not None:
            assert self.rg_create_gate.wait(10.0)
        entry = ResourceGroupEntry(name=resource_group, location=location)
        self.resource_groups[resource_group] = entry
        return entry

    def resource_group_delete(self, resource_group):
        self._record('resource_group_delete', resource_group)
        if self.resource_groups.pop(resource_group, None) is None:
            return None
        return self.delete_uri

    def availability_set_get(self, resource_group, name):
        self._record('availability_set_get', resource_group, name)
        return self.availability_sets.get((resource_group, name), None)

    def availability_set_create(self, resource_group, name, location, tags=None, fault_domains=2, update_domains=5):
        self._record('availability_set_create', resource_group, name, location, tags, fault_domains, update_domains)
        avset = AvailabilitySetRecord(id="/subscriptions/%s/resourceGroups/%s/providers/Microsoft.Compute/availabilitySets/%s" % (SUBSCRIPTION_ID, resource_group, name),
                                      name=name,
                                      location=location,
                                      tags=dict(tags or dict()),
                                      fault_domains=fault_domains,
                                      update_domains=update_domains)
        self.availability_sets[(resource_group, name)] = avset
        return avset

@pytest.fixture(autouse=True)
def reset_azimage_caches():
    """Discard config and process-wide state around every test."""
    azimage.reset_caches(config_data=dict())
    yield
    azimage.reset_caches(config_data=dict())

@pytest.fixture
def fake_clock():
    """Clock for waiters that advances on sleep."""
    return FakeClock()

@pytest.fixture
def control_plane():
    """Fresh in-memory control plane."""
    return FakeControlPlane()

@pytest.fixture
def resource_groups(control_plane):
    """Resource group resolver over the fake control plane."""
    return ResourceGroupResolver(control_plane, name_prefix='azimage')

@pytest.fixture
def waiters(control_plane, fake_clock):
    """Waiters with short timeouts on the fake clock."""
    return Waiters(control_plane,
                   timeout_node_suspended=30,
                   timeout_image_available=60,
                   timeout_image_captured=60,
                   timeout_resource_deleted=60,
                   poll_interval=5,
                   clock=fake_clock.monotonic,
                   sleep=fake_clock.sleep)

@pytest.fixture
def executor():
    """Worker pool for asynchronous workflow stages."""
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)

@pytest.fixture
def images(control_plane, resource_groups, waiters, executor):
    """Image workflows over the fake control plane."""
    return ImageExtension(control_plane, resource_groups, waiters, executor, container_name='captures')
