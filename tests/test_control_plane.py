#
# tests/test_control_plane.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
"""
Tests for azimage.control_plane with the SDK clients mocked
"""
import types
from unittest.mock import Mock

import azure.core.exceptions
from azure.mgmt.compute import ComputeManagementClient
import pytest

from azimage.btypes import (OperationStatus,
                            SecurityRuleProtocol,
                           )
from azimage.control_plane import ControlPlane
from azimage.security_groups import security_rules_for_ports

def _poller(uri):
    response = types.SimpleNamespace(http_response=types.SimpleNamespace(headers={'Azure-AsyncOperation': uri}))
    method = types.SimpleNamespace(_initial_response=response)
    poller = Mock()
    poller.polling_method.return_value = method
    return poller

def _response(status_code, body=None):
    response = Mock()
    response.status_code = status_code
    response.text.return_value = '{}' if body is not None else ''
    response.json.return_value = body
    return response

@pytest.fixture
def az_control_plane():
    """ControlPlane with mocked compute, network, and resource clients."""
    ret = ControlPlane('sub1', credential=object())
    ret._az_compute_cachedclient = Mock() # pylint: disable=protected-access
    ret._az_network_cachedclient = Mock() # pylint: disable=protected-access
    ret._az_resource_cachedclient = Mock() # pylint: disable=protected-access
    return ret

class TestControlPlane:
    """Mapping SDK calls and models to records."""

    def test_requires_subscription(self):
        with pytest.raises(ValueError):
            ControlPlane('')

    def test_vm_get(self, az_control_plane):
        statuses = [types.SimpleNamespace(code='ProvisioningState/succeeded'),
                    types.SimpleNamespace(code='PowerState/deallocated')]
        vm = types.SimpleNamespace(id='/vm/n1', name='n1', location='eastus', provisioning_state='Succeeded',
                                   instance_view=types.SimpleNamespace(statuses=statuses))
        compute = az_control_plane._az_compute_cachedclient # pylint: disable=protected-access
        compute.virtual_machines.get.return_value = vm
        record = az_control_plane.vm_get('rg', 'n1')
        assert record.power_state == 'PowerState/deallocated'
        assert record.suspended
        compute.virtual_machines.get.assert_called_once_with('rg', 'n1', expand='instanceView')

    def test_vm_get_missing(self, az_control_plane):
        compute = az_control_plane._az_compute_cachedclient # pylint: disable=protected-access
        compute.virtual_machines.get.side_effect = azure.core.exceptions.ResourceNotFoundError(message='gone')
        assert az_control_plane.vm_get('rg', 'n1') is None

    def test_vm_get_error(self, az_control_plane):
        compute = az_control_plane._az_compute_cachedclient # pylint: disable=protected-access
        compute.virtual_machines.get.side_effect = RuntimeError('broken')
        with pytest.raises(RuntimeError):
            az_control_plane.vm_get('rg', 'n1')

    def test_vm_capture(self, az_control_plane):
        compute = az_control_plane._az_compute_cachedclient # pylint: disable=protected-access
        compute.virtual_machines.begin_capture.return_value = _poller('https://x/operations/op1')
        assert az_control_plane.vm_capture('rg', 'n1', 'img', 'captures') == 'https://x/operations/op1'
        args, kwargs = compute.virtual_machines.begin_capture.call_args
        assert args[2].destination_container_name == 'captures'
        assert kwargs == {'polling': False}

    def test_image_delete_missing(self, az_control_plane):
        compute = az_control_plane._az_compute_cachedclient # pylint: disable=protected-access
        compute.images.begin_delete.side_effect = azure.core.exceptions.ResourceNotFoundError(message='gone')
        assert az_control_plane.image_delete('rg', 'img') is None

    def test_operation_status(self, az_control_plane):
        """Status GETs go through the compute client's public send_request."""
        compute = Mock(spec=ComputeManagementClient)
        az_control_plane._az_compute_cachedclient = compute # pylint: disable=protected-access
        compute.send_request.return_value = _response(200, {'status': 'InProgress'})
        assert az_control_plane.operation_status('https://x/operations/op1') == OperationStatus.IN_PROGRESS
        request = compute.send_request.call_args[0][0]
        assert request.method == 'GET'
        assert request.url == 'https://x/operations/op1'
        compute.send_request.return_value = _response(202)
        assert az_control_plane.operation_status('https://x/operations/op1') == OperationStatus.IN_PROGRESS
        compute.send_request.return_value = _response(204)
        assert az_control_plane.operation_status('https://x/operations/op1') == OperationStatus.SUCCEEDED

    def test_capture_status(self, az_control_plane):
        body = {'status': 'Succeeded',
                'properties': {'output': {'resources': [{'name': 'osdisk', 'type': 'Microsoft.Compute/images'}]}}}
        compute = Mock(spec=ComputeManagementClient)
        az_control_plane._az_compute_cachedclient = compute # pylint: disable=protected-access
        compute.send_request.return_value = _response(200, body)
        definitions = az_control_plane.capture_status('https://x/operations/op1')
        assert [x.name for x in definitions] == ['osdisk']
        compute.send_request.return_value = _response(200, {'status': 'Succeeded'})
        assert az_control_plane.capture_status('https://x/operations/op1') == []

    def test_nsg_create_or_update(self, az_control_plane):
        network = az_control_plane._az_network_cachedclient # pylint: disable=protected-access
        def begin_create_or_update(resource_group, name, params):
            nsg = types.SimpleNamespace(id="/nsg/%s" % name, name=name, location=params.location,
                                        tags=params.tags, security_rules=params.security_rules)
            return types.SimpleNamespace(result=lambda: nsg)
        network.network_security_groups.begin_create_or_update.side_effect = begin_create_or_update
        record = az_control_plane.nsg_create_or_update('rg', 'web', 'eastus', {'a': 'b'}, security_rules_for_ports([22, 80]))
        assert record.id == '/nsg/web'
        assert [x.destination_port_range for x in record.rules] == ['22-22', '80-80']
        assert record.rules[0].protocol == SecurityRuleProtocol.TCP.value

    def test_resource_group_get_missing(self, az_control_plane):
        resource = az_control_plane._az_resource_cachedclient # pylint: disable=protected-access
        resource.resource_groups.get.side_effect = azure.core.exceptions.ResourceNotFoundError(message='gone')
        assert az_control_plane.resource_group_get('azimage-eastus') is None
