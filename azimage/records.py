#
# azimage/records.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Plain records passed between the control plane and the orchestration code,
plus the adapter from the internal image form (VMImage) to the
caller-facing Image.
'''
from azimage.base_defaults import (CUSTOM_IMAGE_OFFER,
                                   EXC_VALUE_DEFAULT,
                                  )
from azimage.btypes import (OperationStatus,
                            SecurityRuleAccess,
                            SecurityRuleDirection,
                            SecurityRuleProtocol,
                           )
from azimage.exceptions import MalformedIdentity
from azimage.msapicall import operation_status_normalize
from azimage.scopedid import (SEP,
                              ScopedId,
                             )

class _Record():
    '''
    Common repr/eq for records. Subclasses set _fields.
    '''
    _fields = tuple()

    def __init__(self, **kwargs):
        for name in self._fields:
            setattr(self, name, kwargs.pop(name, None))
        if kwargs:
            raise TypeError("%s: unexpected keyword arguments %s" % (type(self).__name__, ','.join(sorted(kwargs.keys()))))

    def __repr__(self):
        return "%s(%s)" % (type(self).__name__, ', '.join("%s=%r" % (k, getattr(self, k)) for k in self._fields))

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return all(getattr(self, k) == getattr(other, k) for k in self._fields)

    __hash__ = None

    def to_dict(self):
        '''
        Return a dict form of this record
        '''
        return {k: getattr(self, k) for k in self._fields}

class VmRecord(_Record):
    '''
    A virtual machine as seen by the compute control plane.
    power_state is the last PowerState/* code, such as 'PowerState/running'.
    '''
    _fields = ('id', 'name', 'location', 'power_state', 'provisioning_state')

    SUSPENDED_POWER_STATES = ('PowerState/stopped', 'PowerState/deallocated')

    @property
    def suspended(self):
        return self.power_state in self.SUSPENDED_POWER_STATES

class ImageRecord(_Record):
    '''
    A managed (custom) image resource
    '''
    _fields = ('id', 'name', 'location', 'source_vm_id', 'provisioning_state', 'tags')

    @property
    def status(self):
        '''
        Provisioning state as OperationStatus
        '''
        return operation_status_normalize(self.provisioning_state)

class SecurityRule(_Record):
    '''
    One rule of a network security group
    '''
    _fields = ('name', 'protocol', 'source_address_prefix', 'source_port_range',
               'destination_address_prefix', 'destination_port_range',
               'direction', 'access', 'priority')

    @classmethod
    def tcp_inbound_allow(cls, start, end, priority):
        '''
        Rule that allows inbound TCP from anywhere to ports start..end inclusive
        '''
        return cls(name="tcp-%d-%d" % (start, end),
                   protocol=SecurityRuleProtocol.TCP,
                   source_address_prefix='*',
                   source_port_range='*',
                   destination_address_prefix='*',
                   destination_port_range="%d-%d" % (start, end),
                   direction=SecurityRuleDirection.INBOUND,
                   access=SecurityRuleAccess.ALLOW,
                   priority=priority)

class SecurityGroupRecord(_Record):
    '''
    A network security group
    '''
    _fields = ('id', 'name', 'location', 'tags', 'rules')

class ResourceDefinition(_Record):
    '''
    One resource produced by a capture operation
    '''
    _fields = ('name', 'type', 'location', 'properties')

class ResourceGroupEntry(_Record):
    '''
    A resource group; immutable once constructed.
    '''
    _fields = ('name', 'location')

    def __setattr__(self, name, value):
        if name in self.__dict__:
            raise AttributeError("%s is read-only" % type(self).__name__)
        super().__setattr__(name, value)

    def __hash__(self):
        return hash((self.name, self.location))

class AvailabilitySetRecord(_Record):
    '''
    An availability set
    '''
    _fields = ('id', 'name', 'location', 'tags', 'fault_domains', 'update_domains')

class AvailabilitySetSpec(_Record):
    '''
    Desired shape of an availability set that may need to be created
    '''
    _fields = ('name', 'tags', 'fault_domains', 'update_domains')

    def __init__(self, name, tags=None, fault_domains=2, update_domains=5):
        super().__init__(name=name, tags=dict(tags or dict()), fault_domains=fault_domains, update_domains=update_domains)

class CloneImageTemplate(_Record):
    '''
    Request to create an image named name from node source_node_id
    '''
    _fields = ('name', 'source_node_id')

class ImageWorkflowState(_Record):
    '''
    Per-invocation state of one image creation
    '''
    _fields = ('source_node_id', 'resource_group_name', 'target_image_name', 'captured_definition_count',
               'stage', 'failed_stage', 'image_record', 'tracking_uri')

class VMImage(_Record):
    '''
    Internal form of an image. Custom images have custom=True, a name,
    and custom_image_id (the Azure resource id). Marketplace images
    have publisher, offer, sku, and optionally version.
    '''
    _fields = ('location', 'custom', 'name', 'custom_image_id',
               'publisher', 'offer', 'sku', 'version')

    @classmethod
    def custom_image(cls, location, name, custom_image_id=None):
        return cls(location=location, custom=True, name=name, custom_image_id=custom_image_id, offer=CUSTOM_IMAGE_OFFER)

    @classmethod
    def marketplace_image(cls, location, publisher, offer, sku, version=None):
        return cls(location=location, custom=False, publisher=publisher, offer=offer, sku=sku, version=version)

    def encode_unique_id(self):
        '''
        Custom images: region/custom/name
        Marketplace images: region/publisher/offer/sku[/version]
        '''
        if self.custom:
            return ScopedId(self.location, CUSTOM_IMAGE_OFFER, self.name).encode()
        toks = [self.location, self.publisher, self.offer, self.sku]
        if self.version:
            toks.append(self.version)
        return SEP.join(toks)

    @classmethod
    def from_unique_id(cls, text, exc_value=MalformedIdentity):
        '''
        Inverse of encode_unique_id()
        '''
        if not isinstance(text, str):
            raise exc_value("cannot decode %s as an image id" % type(text).__name__)
        toks = text.split(SEP)
        if any(not x for x in toks):
            raise exc_value("invalid image id %r (empty segment)" % text)
        if (len(toks) == 3) and (toks[1] == CUSTOM_IMAGE_OFFER):
            return cls.custom_image(toks[0], toks[2])
        if len(toks) in (4, 5):
            return cls.marketplace_image(*toks)
        raise exc_value("invalid image id %r (expected region/custom/name or region/publisher/offer/sku[/version])" % text)

class Image(_Record):
    '''
    Caller-facing image description
    '''
    _fields = ('id', 'provider_id', 'name', 'location', 'status', 'custom', 'description')

def vm_image_to_image(vm_image, status=OperationStatus.SUCCEEDED, exc_value=EXC_VALUE_DEFAULT):
    '''
    Translate a VMImage to the caller-facing Image.
    '''
    if not isinstance(vm_image, VMImage):
        raise exc_value("expected VMImage, not %s" % type(vm_image).__name__)
    if vm_image.custom:
        name = vm_image.name
        description = "custom image %s" % vm_image.name
    else:
        name = vm_image.sku
        description = "%s %s %s" % (vm_image.publisher, vm_image.offer, vm_image.sku)
        if vm_image.version:
            description += " %s" % vm_image.version
    return Image(id=vm_image.encode_unique_id(),
                 provider_id=vm_image.custom_image_id,
                 name=name,
                 location=vm_image.location,
                 status=status,
                 custom=bool(vm_image.custom),
                 description=description)
