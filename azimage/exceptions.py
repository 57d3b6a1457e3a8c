#
# azimage/exceptions.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Exception classes shared across azimage modules
'''

class ApplicationException(Exception):
    '''
    Base class for application exceptions
    '''

class ApplicationExit(ApplicationException):
    '''
    This is interpreted as SystemExit, but it inherits from ApplicationException
    and not SystemExit. That makes it part of the Exception hierarchy
    and not BaseException. The intent is to use this as a replacement
    for SystemExit to simplify multithreaded orchestration.
    '''
    def __init__(self, code):
        self.code = code
        super().__init__(str(self.code))

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.code)

    def __str__(self):
        return str(self.code)

class MalformedIdentity(ValueError):
    '''
    A textual identity does not have the expected number of segments
    '''
    # no specialization here

class OperationFailed(ApplicationException):
    '''
    A polled long-running operation reached a terminal failure state
    '''
    def __init__(self, what, detail=''):
        self.what = what
        self.detail = detail or ''
        txt = "%s failed" % self.what
        if self.detail:
            txt += ": %s" % self.detail
        super().__init__(txt)

    def __repr__(self):
        return "%s(%r, detail=%r)" % (type(self).__name__, self.what, self.detail)

class WorkflowFailed(ApplicationException):
    '''
    An orchestration aborted. stage is the azimage.btypes stage enum
    value that was active when it failed.
    '''
    def __init__(self, stage, reason):
        self.stage = stage
        self.reason = reason
        super().__init__("%s: %s" % (getattr(stage, 'value', stage), reason))

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self.stage, self.reason)

    def __str__(self):
        return "%s at stage %s: %s" % (type(self).__name__, getattr(self.stage, 'value', self.stage), self.reason)

class TimeoutExceeded(WorkflowFailed):
    '''
    A wait predicate did not reach a terminal state in time
    '''
    # no specialization here

class SuspendTimeout(TimeoutExceeded):
    '''
    The source node was not suspended in time
    '''
    # no specialization here

class ImageNotAvailableTimeout(TimeoutExceeded):
    '''
    The new image record did not become available in time
    '''
    # no specialization here

class CaptureTimeout(TimeoutExceeded):
    '''
    The capture operation did not complete in time
    '''
    # no specialization here

class InvariantViolation(WorkflowFailed):
    '''
    An environmental assumption of the workflow does not hold
    '''
    # no specialization here

class UnexpectedDefinitionCount(InvariantViolation):
    '''
    Capture produced other than exactly one resource definition
    '''
    def __init__(self, stage, count):
        self.count = count
        super().__init__(stage, "capture produced %d resource definitions; exactly 1 is supported" % count)

class CaptureNotIssued(InvariantViolation):
    '''
    The capture call did not yield a tracking URI
    '''
    # no specialization here

class SourceNotFound(WorkflowFailed):
    '''
    The source node does not exist
    '''
    # no specialization here

class StageFailed(WorkflowFailed):
    '''
    An external collaborator raised during a stage. The original
    exception is available as __cause__.
    '''
    # no specialization here

class WorkflowCancelled(WorkflowFailed):
    '''
    The caller abandoned the workflow
    '''
    # no specialization here

class PreconditionFailed(ApplicationException, ValueError):
    '''
    A request was rejected before any remote call was made
    '''
    # no specialization here

class NotCustomImage(PreconditionFailed):
    '''
    Only custom images may be deleted
    '''
    def __init__(self, image_id):
        self.image_id = image_id
        super().__init__("image %r is not a custom image" % image_id)

class ConfigNotFoundError(ApplicationExit):
    '''
    Special case of ApplicationExit used to indicate that
    the exit reason is that a requested config file is not found.
    '''
    # no specialization here
