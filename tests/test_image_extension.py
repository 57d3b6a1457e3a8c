#
# tests/test_image_extension.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
"""
Tests for azimage.image_extension
"""
import logging
import threading

import pytest

from azimage.btypes import (OperationStatus,
                            WorkflowStage,
                           )
from azimage.exceptions import (CaptureNotIssued,
                                CaptureTimeout,
                                ImageNotAvailableTimeout,
                                MalformedIdentity,
                                NotCustomImage,
                                OperationFailed,
                                SourceNotFound,
                                StageFailed,
                                SuspendTimeout,
                                UnexpectedDefinitionCount,
                                WorkflowCancelled,
                               )
from azimage.image_extension import (ImageExtension,
                                     _StageExcursion,
                                    )
from azimage.records import (CloneImageTemplate,
                             Image,
                             ImageWorkflowState,
                             ResourceDefinition,
                            )

RESULT_TIMEOUT = 10.0

@pytest.fixture
def node(control_plane):
    """A running node in eastus."""
    return control_plane.add_vm('azimage-eastus', 'n1')

def _template(name='MyImage', node_ref='eastus/node/n1'):
    return ImageExtension.build_image_template_from_node(name, node_ref)

class TestTemplate:
    """build_image_template_from_node."""

    def test_lowercases(self):
        template = _template()
        assert template == CloneImageTemplate(name='myimage', source_node_id='eastus/node/n1')
        assert ImageExtension.build_creation_request('X', 'eastus/n1').name == 'x'

    @pytest.mark.parametrize('name,node_ref', [('', 'eastus/n1'), ('img', '')])
    def test_requires_fields(self, name, node_ref):
        with pytest.raises(ValueError):
            ImageExtension.build_image_template_from_node(name, node_ref)

class TestCreateImage:
    """The create workflow."""

    def test_happy_path(self, images, control_plane, node):
        """Every stage runs in order and the adapter result is returned."""
        image = images.create_image(_template()).result(RESULT_TIMEOUT)
        assert isinstance(image, Image)
        assert image.id == 'eastus/custom/myimage'
        assert image.name == 'myimage'
        assert image.location == 'eastus'
        assert image.custom
        assert image.status == OperationStatus.SUCCEEDED
        assert image.provider_id.endswith('/images/myimage')
        names = [x for x in control_plane.call_names() if not x.startswith('resource_group')]
        assert names == ['vm_get',
                         'vm_stop',
                         'vm_get',
                         'vm_generalize',
                         'image_create',
                         'image_get',
                         'vm_capture',
                         'operation_status',
                         'capture_status',
                        ]
        capture = [x[1] for x in control_plane.calls if x[0] == 'vm_capture'][0]
        assert capture == ('azimage-eastus', 'n1', 'myimage', 'captures')
        create = [x[1] for x in control_plane.calls if x[0] == 'image_create'][0]
        assert create == ('azimage-eastus', 'myimage', 'eastus', node.id)

    def test_custom_adapter(self, control_plane, resource_groups, waiters, executor, node):
        """The adapter receives the VMImage."""
        seen = list()
        def adapter(vm_image):
            seen.append(vm_image)
            return vm_image.encode_unique_id()
        images = ImageExtension(control_plane, resource_groups, waiters, executor, image_adapter=adapter)
        assert images.create_image(_template(node_ref='eastus/n1')).result(RESULT_TIMEOUT) == 'eastus/custom/myimage'
        assert len(seen) == 1
        assert seen[0].custom_image_id.endswith('/images/myimage')

    def test_source_not_found(self, images, control_plane):
        fut = images.create_image(_template(node_ref='eastus/node/missing'))
        with pytest.raises(SourceNotFound) as excinfo:
            fut.result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.REQUESTED
        assert control_plane.call_count('vm_stop') == 0

    def test_malformed_node_ref(self, images, control_plane):
        """A bad node reference fails the future with the parse error chained."""
        fut = images.create_image(_template(node_ref='eastus'))
        with pytest.raises(StageFailed) as excinfo:
            fut.result(RESULT_TIMEOUT)
        assert isinstance(excinfo.value.__cause__, MalformedIdentity)
        assert control_plane.calls == []

    def test_rejects_other_requests(self, images):
        with pytest.raises(TypeError):
            images.create_image({'name': 'img', 'source_node_id': 'eastus/n1'})

    def test_suspend_timeout(self, images, control_plane, node, fake_clock):
        """A node that never suspends stops the workflow before generalize."""
        control_plane.suspend_on_stop = False
        fut = images.create_image(_template())
        with pytest.raises(SuspendTimeout) as excinfo:
            fut.result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.STOPPING
        assert fake_clock.now == 30
        assert control_plane.call_count('vm_generalize') == 0
        assert control_plane.call_count('image_create') == 0
        assert control_plane.call_count('vm_capture') == 0

    def test_generalize_failure(self, images, control_plane, node):
        """A collaborator error becomes StageFailed with the stage."""
        control_plane.fail['vm_generalize'] = RuntimeError('conflict')
        with pytest.raises(StageFailed) as excinfo:
            images.create_image(_template()).result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.GENERALIZING
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert control_plane.call_count('image_create') == 0

    def test_image_not_available(self, images, control_plane, node):
        control_plane.image_provisioning_state = 'Creating'
        with pytest.raises(ImageNotAvailableTimeout) as excinfo:
            images.create_image(_template()).result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.WAITING_AVAILABLE
        assert control_plane.call_count('vm_capture') == 0

    def test_capture_not_issued(self, images, control_plane, node):
        control_plane.capture_uri = None
        with pytest.raises(CaptureNotIssued) as excinfo:
            images.create_image(_template()).result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.CAPTURING
        assert control_plane.call_count('operation_status') == 0

    def test_capture_timeout(self, images, control_plane, node):
        control_plane.operation_statuses[control_plane.capture_uri] = [OperationStatus.IN_PROGRESS]
        with pytest.raises(CaptureTimeout):
            images.create_image(_template()).result(RESULT_TIMEOUT)
        assert control_plane.call_count('capture_status') == 0

    def test_capture_failed(self, images, control_plane, node):
        """A terminal capture failure surfaces as StageFailed chained to OperationFailed."""
        control_plane.operation_statuses[control_plane.capture_uri] = [OperationStatus.FAILED]
        with pytest.raises(StageFailed) as excinfo:
            images.create_image(_template()).result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.CAPTURING
        assert isinstance(excinfo.value.__cause__, OperationFailed)

    @pytest.mark.parametrize('count', [0, 2])
    def test_unexpected_definition_count(self, control_plane, resource_groups, waiters, executor, node, count):
        """Anything but one captured definition fails without materializing an image."""
        control_plane.capture_definitions = [ResourceDefinition(name="d%d" % x) for x in range(count)]
        adapted = list()
        images = ImageExtension(control_plane, resource_groups, waiters, executor, image_adapter=adapted.append)
        with pytest.raises(UnexpectedDefinitionCount) as excinfo:
            images.create_image(_template()).result(RESULT_TIMEOUT)
        assert excinfo.value.count == count
        assert excinfo.value.stage == WorkflowStage.CAPTURED
        assert adapted == []

    def test_cancelled(self, images, control_plane, node):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(WorkflowCancelled) as excinfo:
            images.create_image(_template(), cancel=cancel).result(RESULT_TIMEOUT)
        assert excinfo.value.stage == WorkflowStage.REQUESTED
        assert control_plane.calls == []

    def test_concurrent_workflows(self, images, control_plane):
        """Workflows in one region share the resource group."""
        for idx in range(4):
            control_plane.add_vm('azimage-eastus', "n%d" % idx)
        futs = [images.create_image(_template(name="img%d" % x, node_ref="eastus/n%d" % x)) for x in range(4)]
        assert sorted(x.result(RESULT_TIMEOUT).id for x in futs) == ["eastus/custom/img%d" % x for x in range(4)]
        assert control_plane.call_count('resource_group_create') == 1

class TestStageExcursion:
    """Stage bookkeeping around each workflow step."""

    @staticmethod
    def _excursion(state, during, after):
        return _StageExcursion(state, during, after, None, logging.getLogger('azimage'))

    def test_forward(self):
        state = ImageWorkflowState(target_image_name='img', stage=WorkflowStage.STOPPED)
        with self._excursion(state, WorkflowStage.GENERALIZING, WorkflowStage.IMAGE_RECORD_CREATED):
            assert state.stage == WorkflowStage.GENERALIZING
        assert state.stage == WorkflowStage.IMAGE_RECORD_CREATED

    def test_no_going_back(self):
        """A completed stage cannot be re-entered."""
        state = ImageWorkflowState(target_image_name='img', stage=WorkflowStage.CAPTURED)
        with pytest.raises(RuntimeError):
            with self._excursion(state, WorkflowStage.GENERALIZING, WorkflowStage.IMAGE_RECORD_CREATED):
                pass
        assert state.stage == WorkflowStage.CAPTURED

    def test_failed_is_final(self):
        state = ImageWorkflowState(target_image_name='img', stage=WorkflowStage.STOPPING)
        with pytest.raises(StageFailed):
            with self._excursion(state, WorkflowStage.STOPPING, WorkflowStage.STOPPED):
                raise KeyError('boom')
        assert state.stage == WorkflowStage.FAILED
        assert state.failed_stage == WorkflowStage.STOPPING
        with pytest.raises(RuntimeError):
            with self._excursion(state, WorkflowStage.CAPTURING, WorkflowStage.CAPTURED):
                pass

class TestDeleteImage:
    """Deleting custom images."""

    def test_rejects_marketplace(self, images, control_plane):
        with pytest.raises(NotCustomImage):
            images.delete_image('eastus/canonical/ubuntu/18.04-lts')
        assert control_plane.calls == []

    @pytest.mark.parametrize('image_id', ['eastus', 'eastus/custom', 'eastus//x', 'a/b/c/d/e/f'])
    def test_rejects_malformed(self, images, control_plane, image_id):
        with pytest.raises(MalformedIdentity):
            images.delete_image(image_id)
        assert control_plane.calls == []

    def test_delete(self, images, control_plane):
        control_plane.image_create('azimage-eastus', 'img', 'eastus', 'vmid')
        control_plane.operation_statuses[control_plane.delete_uri] = [OperationStatus.IN_PROGRESS, OperationStatus.SUCCEEDED]
        assert images.delete_image('eastus/custom/img')
        assert ('azimage-eastus', 'img') not in control_plane.images

    def test_delete_missing(self, images, control_plane):
        """Deleting an absent image is done without waiting."""
        assert images.delete_image('eastus/custom/nothere')
        assert control_plane.call_count('operation_status') == 0

    def test_delete_not_confirmed(self, images, control_plane):
        control_plane.image_create('azimage-eastus', 'img', 'eastus', 'vmid')
        control_plane.operation_statuses[control_plane.delete_uri] = [OperationStatus.IN_PROGRESS]
        assert not images.delete_image('eastus/custom/img')

class TestQueries:
    """list_images and get_image."""

    def test_list_images(self, images, control_plane):
        control_plane.image_create('azimage-eastus', 'b', 'eastus', 'vm1')
        control_plane.image_create('azimage-eastus', 'a', 'eastus', 'vm2')
        control_plane.image_create('azimage-westus', 'c', 'westus', 'vm3')
        assert [x.id for x in images.list_images('eastus')] == ['eastus/custom/a', 'eastus/custom/b']

    def test_get_image(self, images, control_plane):
        control_plane.image_provisioning_state = 'Creating'
        control_plane.image_create('azimage-eastus', 'img', 'eastus', 'vm1')
        image = images.get_image('eastus/custom/img')
        assert image.status == OperationStatus.IN_PROGRESS
        assert images.get_image('eastus/custom/other') is None

    def test_get_marketplace(self, images):
        with pytest.raises(NotCustomImage):
            images.get_image('eastus/canonical/ubuntu/18.04-lts/latest')
