#
# azimage/btypes.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Enums and small containers used throughout azimage.
Imports nothing from azimage except base_defaults.
'''
import enum

from azimage.base_defaults import EXC_VALUE_DEFAULT

class EnumMixin():
    '''
    Helpers shared by azimage enums. Members order by declaration
    position, and comparisons accept either a member or a raw value.
    '''
    @classmethod
    def values(cls, sort=True):
        '''
        Raw values of all members; sorted unless sort is false
        '''
        vals = [member.value for member in cls]
        return sorted(vals) if sort else vals

    def _positions(self, other):
        '''
        (position of self, position of other) in declaration order
        '''
        declared = self.values(sort=False)
        return (declared.index(self.value), declared.index(type(self)(other).value))

    def __lt__(self, other):
        mine, theirs = self._positions(other)
        return mine < theirs

    def __le__(self, other):
        mine, theirs = self._positions(other)
        return mine <= theirs

    def __ge__(self, other):
        mine, theirs = self._positions(other)
        return mine >= theirs

    def __gt__(self, other):
        mine, theirs = self._positions(other)
        return mine > theirs

    @classmethod
    def coerce(cls, value, exc_value=EXC_VALUE_DEFAULT, prefix=''):
        '''
        Convert value to a member of cls. A bad value raises exc_value,
        with prefix leading the message when given.
        '''
        try:
            return cls(value)
        except ValueError as exc:
            msg = f"{prefix}: {exc}" if prefix else str(exc)
            raise exc_value(msg) from exc

class ReadOnlyDict(dict):
    '''
    dict whose mutators raise TypeError.
    Lookups of absent keys return default_value when the
    instance has one, otherwise raise KeyError.
    '''
    def _refuse(self, *args, **kwargs):
        raise TypeError("%s cannot be modified" % type(self).__name__)

    __delitem__ = _refuse
    __setitem__ = _refuse
    clear = _refuse
    pop = _refuse
    popitem = _refuse
    setdefault = _refuse
    update = _refuse

    def __missing__(self, key):
        if 'default_value' not in vars(self):
            raise KeyError(key)
        return self.default_value

class LogTo(EnumMixin, enum.Enum):
    '''
    Logging destinations for Application
    '''
    STDERR = 'stderr'
    STDOUT = 'stdout'

class OperationStatus(EnumMixin, enum.Enum):
    '''
    Normalized state of a long-running operation or of the
    resource it is acting upon.
    '''
    IN_PROGRESS = 'in_progress'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    # The status endpoint did not say. Waiters keep polling.
    UNKNOWN = 'unknown'

class WorkflowStage(EnumMixin, enum.Enum):
    '''
    Stages of image creation from a running node, in order.
    FAILED is reachable from any stage.
    '''
    REQUESTED = 'requested'
    STOPPING = 'stopping'
    STOPPED = 'stopped'
    GENERALIZING = 'generalizing'
    IMAGE_RECORD_CREATED = 'image_record_created'
    WAITING_AVAILABLE = 'waiting_available'
    AVAILABLE = 'available'
    CAPTURING = 'capturing'
    CAPTURED = 'captured'
    VERIFIED = 'verified'
    COMPLETED = 'completed'
    FAILED = 'failed'

class DeleteStage(EnumMixin, enum.Enum):
    '''
    Stages of custom image deletion
    '''
    REQUESTED = 'requested'
    DELETING = 'deleting'
    DELETED = 'deleted'
    FAILED = 'failed'

class SecurityRuleAccess(EnumMixin, enum.Enum):
    '''
    Azure-facing strings for security rule access
    '''
    ALLOW = 'Allow'
    DENY = 'Deny'

class SecurityRuleDirection(EnumMixin, enum.Enum):
    '''
    Azure-facing strings for security rule direction
    '''
    INBOUND = 'Inbound'
    OUTBOUND = 'Outbound'

class SecurityRuleProtocol(EnumMixin, enum.Enum):
    '''
    Azure-facing strings for security rule protocol
    '''
    TCP = 'Tcp'
    UDP = 'Udp'
    ANY = '*'
