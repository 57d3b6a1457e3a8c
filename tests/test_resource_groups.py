#
# tests/test_resource_groups.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
"""
Tests for azimage.resource_groups
"""
import concurrent.futures
import threading

import pytest

from azimage.btypes import OperationStatus
from azimage.records import ResourceGroupEntry

class TestResourceGroupResolver:
    """Region to resource group resolution."""

    def test_name(self, resource_groups):
        assert resource_groups.resource_group_name('eastus') == 'azimage-eastus'
        with pytest.raises(ValueError):
            resource_groups.resource_group_name('')

    def test_creates_once(self, resource_groups, control_plane):
        entry = resource_groups.get('eastus')
        assert entry == ResourceGroupEntry(name='azimage-eastus', location='eastus')
        assert resource_groups.get('eastus') is entry
        assert control_plane.call_names() == ['resource_group_get', 'resource_group_create']
        assert resource_groups.regions() == ['eastus']

    def test_reuses_existing(self, resource_groups, control_plane):
        control_plane.resource_groups['azimage-westus'] = ResourceGroupEntry(name='azimage-westus', location='westus')
        assert resource_groups.get('westus').name == 'azimage-westus'
        assert control_plane.call_count('resource_group_create') == 0

    def test_entry_immutable(self, resource_groups):
        entry = resource_groups.get('eastus')
        with pytest.raises(AttributeError):
            entry.name = 'other'

    def test_concurrent_first_use(self, resource_groups, control_plane):
        """Callers racing on a new region issue one create."""
        control_plane.rg_create_gate = threading.Event()
        with concurrent.futures.ThreadPoolExecutor(max_workers=5) as pool:
            futs = [pool.submit(resource_groups.get, 'eastus') for _ in range(5)]
            control_plane.rg_create_gate.set()
            entries = [x.result(10.0) for x in futs]
        assert all(x is entries[0] for x in entries)
        assert control_plane.call_count('resource_group_create') == 1

    def test_get_if_present(self, resource_groups, control_plane):
        assert resource_groups.get_if_present('eastus') is None
        assert control_plane.calls == []

    def test_failure_retried(self, resource_groups, control_plane):
        control_plane.fail['resource_group_create'] = RuntimeError('denied')
        with pytest.raises(RuntimeError):
            resource_groups.get('eastus')
        del control_plane.fail['resource_group_create']
        assert resource_groups.get('eastus').name == 'azimage-eastus'

class TestRelease:
    """Releasing a region's resource group."""

    def test_release_unresolved(self, resource_groups, control_plane):
        assert not resource_groups.release('eastus')
        assert control_plane.calls == []

    def test_release(self, resource_groups, control_plane, waiters):
        resource_groups.get('eastus')
        control_plane.operation_statuses[control_plane.delete_uri] = [OperationStatus.IN_PROGRESS, OperationStatus.SUCCEEDED]
        assert resource_groups.release('eastus', waiter=waiters.resource_deleted())
        assert resource_groups.get_if_present('eastus') is None
        assert resource_groups.regions() == []
        assert 'azimage-eastus' not in control_plane.resource_groups

    def test_release_without_waiter(self, resource_groups, control_plane):
        resource_groups.get('eastus')
        assert resource_groups.release('eastus')
        assert control_plane.call_count('operation_status') == 0
        resource_groups.get('eastus')
        assert control_plane.call_count('resource_group_create') == 2
