#
# azimage/waiters.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Bounded polling of long-running operations.

await_condition() is the one polling loop. Waiter binds it to a status
source and a timeout. Waiters builds the four instances the image
workflows use: node-suspended, image-available, image-captured,
and resource-deleted.
'''
import logging
import time

from azimage.base_defaults import (LOGGER_NAME_DEFAULT,
                                   POLL_INTERVAL_DEFAULT,
                                   TIMEOUT_IMAGE_AVAILABLE_DEFAULT,
                                   TIMEOUT_IMAGE_CAPTURED_DEFAULT,
                                   TIMEOUT_NODE_SUSPENDED_DEFAULT,
                                   TIMEOUT_RESOURCE_DELETED_DEFAULT,
                                  )
from azimage.btypes import OperationStatus
from azimage.exceptions import (OperationFailed,
                                WorkflowCancelled,
                               )
from azimage.util import (elapsed,
                          getframe,
                         )

def await_condition(poll, timeout, interval,
                    cancel=None,
                    clock=time.monotonic,
                    sleep=None,
                    what='operation',
                    logger=None):
    '''
    Call poll() until it returns a terminal OperationStatus or timeout
    seconds have elapsed. poll() is always called at least once, so
    timeout=0 checks exactly once.
    Returns True on SUCCEEDED and False on timeout.
    Raises OperationFailed on FAILED. IN_PROGRESS and UNKNOWN keep polling.
    cancel is an optional threading.Event. When it is set, stop
    polling and raise WorkflowCancelled.
    sleep(secs) waits between polls. It defaults to cancel.wait when
    cancel is given (so a set event ends the wait early), else time.sleep.
    An injected sleep is always used, and cancel is checked after it.
    '''
    if sleep is None:
        sleep = cancel.wait if cancel is not None else time.sleep
    logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
    t0 = clock()
    deadline = t0 + timeout
    attempt = 0
    while True:
        if (cancel is not None) and cancel.is_set():
            raise WorkflowCancelled(None, "wait for %s cancelled" % what)
        attempt += 1
        status = poll()
        if status == OperationStatus.SUCCEEDED:
            logger.debug("%s %s succeeded after %.1fs (%d polls)", getframe(0), what, elapsed(t0, clock()), attempt)
            return True
        if status == OperationStatus.FAILED:
            raise OperationFailed(what, "terminal failure after %d polls" % attempt)
        now = clock()
        remaining = deadline - now
        if remaining <= 0:
            logger.debug("%s %s not done after %.1fs (%d polls, last %s)", getframe(0), what, elapsed(t0, now), attempt, status)
            return False
        logger.debug("%s %s %s; poll again in %.1fs", getframe(0), what, status.value, min(interval, remaining))
        sleep(min(interval, remaining))

class Waiter():
    '''
    Named predicate: given a handle, wait for status_fn(handle) to
    become terminal within timeout seconds.
    '''
    def __init__(self, name, status_fn, timeout, interval=POLL_INTERVAL_DEFAULT, logger=None, clock=time.monotonic, sleep=None):
        self.name = name
        self.status_fn = status_fn
        self.timeout = timeout
        self.interval = interval
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self.clock = clock
        self.sleep = sleep

    def __repr__(self):
        return "%s(%r, timeout=%r, interval=%r)" % (type(self).__name__, self.name, self.timeout, self.interval)

    def __call__(self, handle, cancel=None) -> bool:
        return await_condition(lambda: self.status_fn(handle),
                               self.timeout,
                               self.interval,
                               cancel=cancel,
                               clock=self.clock,
                               sleep=self.sleep,
                               what="%s(%s)" % (self.name, handle),
                               logger=self.logger)

class Waiters():
    '''
    Factory for the waiters used by the image workflows.
    control_plane provides vm_get, image_get, and operation_status.
    '''
    def __init__(self, control_plane,
                 timeout_node_suspended=TIMEOUT_NODE_SUSPENDED_DEFAULT,
                 timeout_image_available=TIMEOUT_IMAGE_AVAILABLE_DEFAULT,
                 timeout_image_captured=TIMEOUT_IMAGE_CAPTURED_DEFAULT,
                 timeout_resource_deleted=TIMEOUT_RESOURCE_DELETED_DEFAULT,
                 poll_interval=POLL_INTERVAL_DEFAULT,
                 logger=None,
                 clock=time.monotonic,
                 sleep=None):
        self.control_plane = control_plane
        self.timeout_node_suspended = timeout_node_suspended
        self.timeout_image_available = timeout_image_available
        self.timeout_image_captured = timeout_image_captured
        self.timeout_resource_deleted = timeout_resource_deleted
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self._clock = clock
        self._sleep = sleep

    def _waiter(self, name, status_fn, timeout):
        return Waiter(name, status_fn, timeout, interval=self.poll_interval, logger=self.logger, clock=self._clock, sleep=self._sleep)

    def node_suspended(self, resource_group_name):
        '''
        Waiter over node names in resource_group_name
        '''
        def status(node_name):
            vm = self.control_plane.vm_get(resource_group_name, node_name)
            if vm is None:
                raise OperationFailed("node_suspended(%s)" % node_name, "node no longer exists")
            if vm.suspended:
                return OperationStatus.SUCCEEDED
            return OperationStatus.IN_PROGRESS
        return self._waiter('node_suspended', status, self.timeout_node_suspended)

    def image_available(self, resource_group_name):
        '''
        Waiter over image names in resource_group_name
        '''
        def status(image_name):
            image = self.control_plane.image_get(resource_group_name, image_name)
            if image is None:
                # Reads may lag the create
                return OperationStatus.UNKNOWN
            return image.status
        return self._waiter('image_available', status, self.timeout_image_available)

    def image_captured(self):
        '''
        Waiter over capture tracking URIs
        '''
        return self._waiter('image_captured', self.control_plane.operation_status, self.timeout_image_captured)

    def resource_deleted(self):
        '''
        Waiter over delete tracking URIs
        '''
        return self._waiter('resource_deleted', self.control_plane.operation_status, self.timeout_resource_deleted)
