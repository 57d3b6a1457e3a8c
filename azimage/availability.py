#
# azimage/availability.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Resolve the availability set a new node should join.
'''
import logging

from azimage.base_defaults import LOGGER_NAME_DEFAULT
from azimage.records import AvailabilitySetSpec

class AvailabilitySetResolver():
    '''
    Availability sets live in the per-region resource group.
    '''
    def __init__(self, resource_groups, control_plane, logger=None):
        self.resource_groups = resource_groups
        self.control_plane = control_plane
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)

    def resolve(self, location, name=None, spec=None):
        '''
        name: an existing availability set that must be in location.
        spec: AvailabilitySetSpec of a set to reuse if present in location,
              or to create if absent.
        Return AvailabilitySetRecord, or None when neither is given.
        '''
        if name:
            resource_group = self.resource_groups.get(location)
            ret = self.control_plane.availability_set_get(resource_group.name, name)
            if ret is None:
                raise ValueError("No availability set with name %r was found" % name)
            self._check_location(ret, location)
            return ret
        if spec is not None:
            if not isinstance(spec, AvailabilitySetSpec):
                raise TypeError("expected AvailabilitySetSpec, not %s" % type(spec).__name__)
            resource_group = self.resource_groups.get(location)
            ret = self.control_plane.availability_set_get(resource_group.name, spec.name)
            if ret is not None:
                self._check_location(ret, location)
                return ret
            ret = self.control_plane.availability_set_create(resource_group.name, spec.name, location,
                                                             tags=spec.tags,
                                                             fault_domains=spec.fault_domains,
                                                             update_domains=spec.update_domains)
            self.logger.debug(">> created availability set %s", ret.name)
            return ret
        return None

    @staticmethod
    def _check_location(avset, location):
        if avset.location != location:
            raise ValueError("The availability set %s does not belong to location %s" % (avset.name, location))
