#
# azimage/image_extension.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Create custom images from running nodes, and list, fetch, and delete them.

create_image() runs in two parts. On the calling thread it resolves the
node, stops it, and waits for it to be suspended. The rest (generalize,
create the image record, wait for it, capture, wait for the capture,
verify, and materialize the result) runs on the shared executor. Either
way the caller gets a Future; every workflow failure is delivered through
it as a WorkflowFailed subclass that carries the stage.

A suspend timeout leaves the node stopped. Nothing restarts it.
'''
import concurrent.futures
import logging

from azimage.base_defaults import (CAPTURE_CONTAINER_NAME_DEFAULT,
                                   LOGGER_NAME_DEFAULT,
                                  )
from azimage.btypes import (DeleteStage,
                            WorkflowStage,
                           )
from azimage.exceptions import (CaptureNotIssued,
                                CaptureTimeout,
                                ImageNotAvailableTimeout,
                                NotCustomImage,
                                SourceNotFound,
                                StageFailed,
                                SuspendTimeout,
                                UnexpectedDefinitionCount,
                                WorkflowCancelled,
                                WorkflowFailed,
                               )
from azimage.records import (CloneImageTemplate,
                             ImageWorkflowState,
                             VMImage,
                             vm_image_to_image,
                            )
from azimage.scopedid import node_ref_decode

class _StageExcursion():
    '''
    Context manager for one workflow stage. On entry, state.stage is
    stage_during. On clean exit it becomes stage_after. On error it
    becomes FAILED with failed_stage recorded; WorkflowFailed passes
    through (tagged with the stage if it has none) and anything else is
    raised as StageFailed chained to the original.
    '''
    def __init__(self, state, stage_during, stage_after, cancel, logger):
        self.state = state
        self.stage_during = stage_during
        self.stage_after = stage_after
        self.cancel = cancel
        self.logger = logger

    def __enter__(self):
        # Stages only move forward; FAILED sorts after every other stage
        if self.stage_during < self.state.stage:
            raise RuntimeError("image %s cannot enter stage %s from %s" % (self.state.target_image_name, self.stage_during.value, self.state.stage.value))
        self.state.stage = self.stage_during
        if (self.cancel is not None) and self.cancel.is_set():
            self.state.failed_stage = self.stage_during
            self.state.stage = WorkflowStage.FAILED
            raise WorkflowCancelled(self.stage_during, "image %s cancelled" % self.state.target_image_name)
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        if exc_value is None:
            self.state.stage = self.stage_after
            return False
        self.state.failed_stage = self.stage_during
        self.state.stage = WorkflowStage.FAILED
        if isinstance(exc_value, WorkflowFailed):
            if exc_value.stage is None:
                exc_value.stage = self.stage_during
            self.logger.warning("image %s failed: %s", self.state.target_image_name, exc_value)
            return False
        if isinstance(exc_value, Exception):
            self.logger.warning("image %s failed at stage %s: %r", self.state.target_image_name, self.stage_during.value, exc_value)
            raise StageFailed(self.stage_during, repr(exc_value)) from exc_value
        return False

class ImageExtension():
    '''
    Image workflows for one control plane.
    image_adapter translates VMImage to the caller-facing image form.
    '''
    def __init__(self, control_plane, resource_groups, waiters, executor,
                 image_adapter=vm_image_to_image,
                 container_name=CAPTURE_CONTAINER_NAME_DEFAULT,
                 logger=None):
        self.control_plane = control_plane
        self.resource_groups = resource_groups
        self.waiters = waiters
        self.executor = executor
        self.image_adapter = image_adapter
        self.container_name = container_name
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.control_plane)

    @staticmethod
    def build_image_template_from_node(name, source_node_id):
        '''
        Return the request to create an image named name from source_node_id.
        Image names are lowercased.
        '''
        if not name:
            raise ValueError("image name not specified")
        if not source_node_id:
            raise ValueError("source node not specified")
        return CloneImageTemplate(name=name.lower(), source_node_id=str(source_node_id))

    build_creation_request = build_image_template_from_node

    def _stage(self, state, stage_during, stage_after, cancel):
        return _StageExcursion(state, stage_during, stage_after, cancel, self.logger)

    def create_image(self, template, cancel=None):
        '''
        Start creating the image described by template (CloneImageTemplate).
        Return a concurrent.futures.Future that resolves to the
        image_adapter result. cancel is an optional threading.Event;
        setting it stops the workflow at its next stage or poll.
        '''
        if not isinstance(template, CloneImageTemplate):
            raise TypeError("expected CloneImageTemplate, not %s" % type(template).__name__)
        state = ImageWorkflowState(source_node_id=template.source_node_id,
                                   target_image_name=template.name,
                                   stage=WorkflowStage.REQUESTED)
        try:
            node_ref, vm = self._create_image_stop(state, cancel)
        except WorkflowFailed as exc:
            fut = concurrent.futures.Future()
            fut.set_exception(exc)
            return fut
        return self.executor.submit(self._create_image_finish, state, node_ref, vm, cancel)

    def _create_image_stop(self, state, cancel):
        '''
        Synchronous part of create_image(): resolve, stop, wait for suspend.
        '''
        with self._stage(state, WorkflowStage.REQUESTED, WorkflowStage.REQUESTED, cancel):
            node_ref = node_ref_decode(state.source_node_id)
            resource_group = self.resource_groups.get(node_ref.region)
            state.resource_group_name = resource_group.name
            vm = self.control_plane.vm_get(state.resource_group_name, node_ref.id)
            if vm is None:
                raise SourceNotFound(WorkflowStage.REQUESTED, "node %s does not exist" % node_ref.encode())

        with self._stage(state, WorkflowStage.STOPPING, WorkflowStage.STOPPED, cancel):
            self.logger.debug(">> stopping node %s...", node_ref.encode())
            self.control_plane.vm_stop(state.resource_group_name, node_ref.id)
            if not self.waiters.node_suspended(state.resource_group_name)(node_ref.id, cancel=cancel):
                raise SuspendTimeout(WorkflowStage.STOPPING,
                                     "node %s was not suspended within %ss" % (node_ref.encode(), self.waiters.timeout_node_suspended))
        return (node_ref, vm)

    def _create_image_finish(self, state, node_ref, vm, cancel):
        '''
        Asynchronous part of create_image(); runs on the executor.
        '''
        rg_name = state.resource_group_name

        with self._stage(state, WorkflowStage.GENERALIZING, WorkflowStage.IMAGE_RECORD_CREATED, cancel):
            self.logger.debug(">> generalizing node %s...", node_ref.encode())
            self.control_plane.vm_generalize(rg_name, node_ref.id)
            state.image_record = self.control_plane.image_create(rg_name, state.target_image_name, node_ref.region, vm.id)

        with self._stage(state, WorkflowStage.WAITING_AVAILABLE, WorkflowStage.AVAILABLE, cancel):
            if not self.waiters.image_available(rg_name)(state.image_record.name, cancel=cancel):
                raise ImageNotAvailableTimeout(WorkflowStage.WAITING_AVAILABLE,
                                               "image %s was not available within %ss" % (state.target_image_name, self.waiters.timeout_image_available))

        with self._stage(state, WorkflowStage.CAPTURING, WorkflowStage.CAPTURED, cancel):
            self.logger.debug(">> capturing node %s to container %s...", node_ref.encode(), self.container_name)
            state.tracking_uri = self.control_plane.vm_capture(rg_name, node_ref.id, state.target_image_name, self.container_name)
            if not state.tracking_uri:
                raise CaptureNotIssued(WorkflowStage.CAPTURING, "capture of node %s returned no tracking URI" % node_ref.encode())
            if not self.waiters.image_captured()(state.tracking_uri, cancel=cancel):
                raise CaptureTimeout(WorkflowStage.CAPTURING,
                                     "image %s was not captured within %ss" % (state.target_image_name, self.waiters.timeout_image_captured))

        with self._stage(state, WorkflowStage.CAPTURED, WorkflowStage.VERIFIED, cancel):
            definitions = self.control_plane.capture_status(state.tracking_uri)
            state.captured_definition_count = len(definitions)
            if len(definitions) != 1:
                raise UnexpectedDefinitionCount(WorkflowStage.CAPTURED, len(definitions))

        with self._stage(state, WorkflowStage.VERIFIED, WorkflowStage.COMPLETED, cancel):
            vm_image = VMImage.custom_image(node_ref.region, state.image_record.name, custom_image_id=state.image_record.id)
            ret = self.image_adapter(vm_image)

        self.logger.info("image %s created from node %s", vm_image.encode_unique_id(), node_ref.encode())
        return ret

    def delete_image(self, image_id, cancel=None):
        '''
        Delete the custom image image_id (region/custom/name).
        Returns the resource-deleted wait result: False means the delete
        was not confirmed within the timeout, not that it failed.
        A delete of an image that does not exist returns True.
        Raises NotCustomImage before any remote call for other images.
        '''
        stage = DeleteStage.REQUESTED
        vm_image = VMImage.from_unique_id(image_id)
        if not vm_image.custom:
            raise NotCustomImage(image_id)
        self.logger.debug(">> deleting image %s", image_id)
        try:
            resource_group = self.resource_groups.get(vm_image.location)
            stage = DeleteStage.DELETING
            uri = self.control_plane.image_delete(resource_group.name, vm_image.name)
            if uri is None:
                ret = True
            else:
                ret = self.waiters.resource_deleted()(uri, cancel=cancel)
        except Exception as exc:
            self.logger.warning("delete image %s failed at stage %s: %r", image_id, stage.value, exc)
            raise
        self.logger.info("delete image %s %s", image_id, DeleteStage.DELETED.value if ret else 'not confirmed')
        return ret

    def _image_from_record(self, record):
        vm_image = VMImage.custom_image(record.location, record.name, custom_image_id=record.id)
        return self.image_adapter(vm_image, status=record.status)

    def list_images(self, region):
        '''
        Return caller-facing images for the custom images in region
        '''
        resource_group = self.resource_groups.get(region)
        return [self._image_from_record(x) for x in self.control_plane.image_list(resource_group.name)]

    def get_image(self, image_id):
        '''
        Return the caller-facing image for image_id or None if it does not exist
        '''
        vm_image = VMImage.from_unique_id(image_id)
        if not vm_image.custom:
            raise NotCustomImage(image_id)
        resource_group = self.resource_groups.get(vm_image.location)
        record = self.control_plane.image_get(resource_group.name, vm_image.name)
        if record is None:
            return None
        return self._image_from_record(record)
