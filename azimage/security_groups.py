#
# azimage/security_groups.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Provision network security groups that open a set of inbound TCP ports.
'''
import logging

from azimage.base_defaults import (LOGGER_NAME_DEFAULT,
                                   SECURITY_RULE_PRIORITY_MAX,
                                   SECURITY_RULE_PRIORITY_MIN,
                                  )
from azimage.cacher import Cache
from azimage.records import SecurityRule
from azimage.scopedid import (IngressKey,
                              ports_normalize,
                             )

def port_ranges(ports):
    '''
    Merge ports into a sorted list of inclusive (start, end) ranges.
    Adjacent and repeated ports collapse into one range.
    '''
    ret = list()
    for port in sorted(ports):
        if ret and (port <= ret[-1][1] + 1):
            ret[-1] = (ret[-1][0], max(ret[-1][1], port))
        else:
            ret.append((port, port))
    return ret

def security_rules_for_ports(ports, priority_min=SECURITY_RULE_PRIORITY_MIN, priority_max=SECURITY_RULE_PRIORITY_MAX):
    '''
    Return a list of SecurityRule, one per contiguous port range,
    with priorities increasing from priority_min.
    '''
    ranges = port_ranges(ports_normalize(ports))
    if priority_min + len(ranges) - 1 > priority_max:
        raise ValueError("%d port ranges do not fit in rule priorities %d..%d" % (len(ranges), priority_min, priority_max))
    return [SecurityRule.tcp_inbound_allow(start, end, priority_min + idx) for idx, (start, end) in enumerate(ranges)]

class SecurityGroupProvisioner():
    '''
    Single-flight IngressKey -> security group id.
    The group is named key.id and lives in the resource group for key.region.
    '''
    def __init__(self, resource_groups, control_plane, tags=None, logger=None):
        self.resource_groups = resource_groups
        self.control_plane = control_plane
        self.tags = dict(tags or dict())
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self._cache = Cache(loader=self._load)

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.control_plane)

    def _load(self, key):
        rules = security_rules_for_ports(key.inbound_ports)
        resource_group = self.resource_groups.get(key.region)
        self.logger.debug("creating security group %s in %s with %d rules", key, resource_group.name, len(rules))
        nsg = self.control_plane.nsg_create_or_update(resource_group.name, key.id, key.region, self.tags, rules)
        self.logger.info("security group %s ready: %s", key, nsg.id)
        return nsg.id

    def ensure(self, key):
        '''
        Return the id of the security group for key, creating it
        if this process has not already done so.
        '''
        if not isinstance(key, IngressKey):
            raise TypeError("expected IngressKey, not %s" % type(key).__name__)
        return self._cache.get(key)

    def get_if_present(self, key):
        '''
        Return the already-provisioned security group id for key or None
        '''
        return self._cache.get_if_present(key)
