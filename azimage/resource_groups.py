#
# azimage/resource_groups.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Per-region resource group resolution. The first caller for a region
ensures the group exists; everyone else reuses that result.
'''
import logging

from azimage.base_defaults import (LOGGER_NAME_DEFAULT,
                                   RESOURCE_NAME_PREFIX_DEFAULT,
                                  )
from azimage.cacher import Cache

class ResourceGroupResolver():
    '''
    Single-flight region -> ResourceGroupEntry.
    '''
    def __init__(self, control_plane, name_prefix=RESOURCE_NAME_PREFIX_DEFAULT, tags=None, logger=None):
        self.control_plane = control_plane
        self.name_prefix = name_prefix
        self.tags = dict(tags or dict())
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self._cache = Cache(loader=self._load)

    def __repr__(self):
        return "%s(%r, name_prefix=%r)" % (type(self).__name__, self.control_plane, self.name_prefix)

    def resource_group_name(self, region):
        '''
        Name of the resource group that holds managed resources for region
        '''
        if not region:
            raise ValueError("region not specified")
        return "%s-%s" % (self.name_prefix, region)

    def _load(self, region):
        '''
        Get or create the resource group for region
        '''
        name = self.resource_group_name(region)
        ret = self.control_plane.resource_group_get(name)
        if ret:
            self.logger.debug("resource_group %s already exists", name)
            return ret
        ret = self.control_plane.resource_group_create(name, region, tags=self.tags)
        self.logger.debug("created resource_group %s", name)
        return ret

    def get(self, region):
        '''
        Return ResourceGroupEntry for region, creating the group if necessary
        '''
        return self._cache.get(region)

    def get_if_present(self, region):
        '''
        Return the already-resolved ResourceGroupEntry for region or None.
        Never calls the control plane.
        '''
        return self._cache.get_if_present(region)

    def regions(self):
        '''
        Regions with resolved resource groups
        '''
        return sorted(self._cache.keys())

    def release(self, region, waiter=None, cancel=None):
        '''
        Delete the resolved resource group for region and forget it.
        With waiter (a resource-deleted waiter), wait for the delete
        and return the wait result. Without waiter, return True once
        the delete is issued. Return False if nothing was resolved for region.
        '''
        entry = self._cache.get_if_present(region)
        if entry is None:
            self.logger.info("no resource group resolved for region %s", region)
            return False
        uri = self.control_plane.resource_group_delete(entry.name)
        self._cache.invalidate(region)
        if (waiter is None) or (uri is None):
            return True
        return waiter(uri, cancel=cancel)
