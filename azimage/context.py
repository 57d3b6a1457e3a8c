#
# azimage/context.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Wire the image components together. One ImageContext per subscription
is shared by the whole process.
'''
import concurrent.futures
import logging

from azimage._scfg import scfg
from azimage.availability import AvailabilitySetResolver
from azimage.base_defaults import LOGGER_NAME_DEFAULT
from azimage.cacher import Cache
from azimage.image_extension import ImageExtension
from azimage.resource_groups import ResourceGroupResolver
from azimage.security_groups import SecurityGroupProvisioner
from azimage.waiters import Waiters

class ImageContext():
    '''
    The control plane for one subscription plus the process-wide
    resolvers, waiters, worker pool, and image workflows built on it.
    Settings not passed explicitly come from scfg.
    '''
    def __init__(self, control_plane, logger=None, **kwargs):
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self.control_plane = control_plane
        settings = {k : kwargs.pop(k, None) for k in self.SETTINGS}
        if kwargs:
            raise TypeError("%s: unexpected keyword arguments %s" % (type(self).__name__, ','.join(sorted(kwargs.keys()))))
        for k, v in settings.items():
            setattr(self, k, scfg.get(k, None) if v is None else v)
        self.resource_groups = ResourceGroupResolver(control_plane,
                                                     name_prefix=self.resource_name_prefix,
                                                     tags=self.tags,
                                                     logger=self.logger)
        self.security_groups = SecurityGroupProvisioner(self.resource_groups, control_plane, tags=self.tags, logger=self.logger)
        self.availability_sets = AvailabilitySetResolver(self.resource_groups, control_plane, logger=self.logger)
        self.waiters = Waiters(control_plane,
                               timeout_node_suspended=self.timeout_node_suspended,
                               timeout_image_available=self.timeout_image_available,
                               timeout_image_captured=self.timeout_image_captured,
                               timeout_resource_deleted=self.timeout_resource_deleted,
                               poll_interval=self.poll_interval,
                               logger=self.logger)
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.user_threads, thread_name_prefix='azimage-user')
        self.images = ImageExtension(control_plane,
                                     self.resource_groups,
                                     self.waiters,
                                     self.executor,
                                     container_name=self.capture_container_name,
                                     logger=self.logger)

    SETTINGS = ('capture_container_name',
                'poll_interval',
                'resource_name_prefix',
                'tags',
                'timeout_image_available',
                'timeout_image_captured',
                'timeout_node_suspended',
                'timeout_resource_deleted',
                'user_threads',
               )

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.control_plane)

    def shutdown(self, wait=True):
        '''
        Stop the worker pool
        '''
        self.executor.shutdown(wait=wait)

def _context_load(subscription_id):
    # Deferred so that importing azimage does not import the management SDKs
    from azimage.control_plane import ControlPlane # pylint: disable=import-outside-toplevel
    return ImageContext(ControlPlane(subscription_id))

_contexts = Cache(loader=_context_load)

def context_for(subscription_id=None):
    '''
    Return the process-wide ImageContext for subscription_id
    (default: scfg subscription_id).
    '''
    subscription_id = subscription_id or scfg.get('subscription_id', None)
    if not subscription_id:
        raise ValueError("'subscription_id' not specified; set it in the config defaults or pass it explicitly")
    return _contexts.get(subscription_id)

def contexts_reset():
    '''
    Shut down and forget all process-wide contexts
    '''
    for subscription_id in _contexts.keys():
        ctx = _contexts.get_if_present(subscription_id)
        if _contexts.invalidate(subscription_id) and ctx is not None:
            ctx.shutdown(wait=False)
