#
# azimage/image_tool.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Command-line access to image workflows and the resources they depend on.

Examples:
  azimage-tool create_image --node eastus/myvm --image_name myimage
  azimage-tool list_images --region eastus
  azimage-tool delete_image --image_id eastus/custom/myimage
  azimage-tool ensure_nsg --region eastus --nsg_name web --ports 22,80,81,443
'''
import sys

from azimage._scfg import scfg
from azimage.command import Command
from azimage.common import Application
from azimage.context import context_for
from azimage.exceptions import (ApplicationExit,
                                WorkflowFailed,
                               )
from azimage.records import AvailabilitySetSpec
from azimage.scopedid import IngressKey

command = Command()

class ImageTool(Application):
    '''
    Application that exposes the image workflows as actions
    '''
    def __init__(self,
                 availability_set='',
                 context=None,
                 image_id='',
                 image_name='',
                 node='',
                 nsg_name='',
                 nsg_scope='nsg',
                 ports='',
                 region='',
                 subscription_id='',
                 wait=False,
                 **kwargs):
        super().__init__(**kwargs)
        self.availability_set = availability_set
        self._context = context
        self.image_id = image_id
        self.image_name = image_name
        self.node = node
        self.nsg_name = nsg_name
        self.nsg_scope = nsg_scope
        self.ports = ports
        self.region = region or scfg.get('location_default', '')
        self.subscription_id = subscription_id
        self.wait = wait

    ARGS_SAVE = ('action',)

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See azimage.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        ap_parser.add_argument('action', type=str, choices=command.actions,
                               help='what to do')
        group = ap_parser.get_argument_group('image_tool')
        group.add_argument('--subscription_id', type=str, default='',
                           help='subscription (default: config defaults[subscription_id])')
        group.add_argument('--region', type=str, default='',
                           help='region (default: config defaults[location_default])')
        group.add_argument('--node', type=str, default='',
                           help='source node as region/name or region/scope/name')
        group.add_argument('--image_name', type=str, default='',
                           help='name of the image to create')
        group.add_argument('--image_id', type=str, default='',
                           help='image id such as region/custom/name')
        group.add_argument('--nsg_name', type=str, default='',
                           help='network security group name')
        group.add_argument('--nsg_scope', type=str, default='nsg',
                           help='scope of the network security group identity')
        group.add_argument('--ports', type=str, default='',
                           help='comma-separated inbound TCP ports')
        group.add_argument('--availability_set', type=str, default='',
                           help='availability set name')
        group.add_argument('--wait', action='store_true',
                           help='wait for deletes to complete')

    @property
    def context(self):
        '''
        Getter: the process-wide ImageContext for self.subscription_id
        '''
        if self._context is None:
            try:
                self._context = context_for(self.subscription_id or None)
            except ValueError as exc:
                raise ApplicationExit(str(exc)) from exc
        return self._context

    def _require(self, *names):
        for name in names:
            if not getattr(self, name):
                raise ApplicationExit("'%s' not specified" % name)

    def _ports_list(self):
        try:
            return [int(x) for x in self.ports.split(',') if x.strip()]
        except ValueError as exc:
            raise ApplicationExit("invalid ports %r" % self.ports) from exc

    @command.printable
    def create_image(self):
        '''
        Create a custom image from --node named --image_name
        '''
        self._require('node', 'image_name')
        images = self.context.images
        template = images.build_image_template_from_node(self.image_name, self.node)
        self.logger.info("create image %s from %s", template.name, template.source_node_id)
        try:
            return images.create_image(template).result()
        except WorkflowFailed as exc:
            raise ApplicationExit(str(exc)) from exc

    @command.printable
    def delete_image(self):
        '''
        Delete the custom image --image_id
        '''
        self._require('image_id')
        try:
            deleted = self.context.images.delete_image(self.image_id)
        except ValueError as exc:
            raise ApplicationExit(str(exc)) from exc
        if not deleted:
            raise ApplicationExit("delete of %s not confirmed within the timeout" % self.image_id)
        return "deleted %s" % self.image_id

    @command.table
    def list_images(self):
        '''
        List custom images in --region
        '''
        self._require('region')
        return self.context.images.list_images(self.region)

    @command.printable
    def image_get(self):
        '''
        Show the custom image --image_id
        '''
        self._require('image_id')
        try:
            ret = self.context.images.get_image(self.image_id)
        except ValueError as exc:
            raise ApplicationExit(str(exc)) from exc
        if ret is None:
            raise ApplicationExit("image %s not found" % self.image_id)
        return ret

    @command.printable
    def ensure_nsg(self):
        '''
        Ensure network security group --nsg_name in --region opens --ports
        '''
        self._require('region', 'nsg_name', 'ports')
        try:
            key = IngressKey(self.region, self.nsg_scope, self.nsg_name, self._ports_list(), exc_value=ApplicationExit)
            return self.context.security_groups.ensure(key)
        except ValueError as exc:
            raise ApplicationExit(str(exc)) from exc

    @command.printable
    def resource_group_get(self):
        '''
        Show (creating if necessary) the resource group for --region
        '''
        self._require('region')
        return self.context.resource_groups.get(self.region)

    @command.printable
    def resource_group_release(self):
        '''
        Delete the resource group for --region
        '''
        self._require('region')
        resource_groups = self.context.resource_groups
        # release() only deletes what this process resolved
        resource_groups.get(self.region)
        waiter = self.context.waiters.resource_deleted() if self.wait else None
        if not resource_groups.release(self.region, waiter=waiter):
            raise ApplicationExit("delete of resource group for %s not confirmed" % self.region)
        return "released resource group for %s" % self.region

    @command.printable
    def availability_set_resolve(self):
        '''
        Find or create availability set --availability_set in --region
        '''
        self._require('region', 'availability_set')
        try:
            return self.context.availability_sets.resolve(self.region, spec=AvailabilitySetSpec(self.availability_set))
        except ValueError as exc:
            raise ApplicationExit(str(exc)) from exc

    @command.printable
    def config_print(self):
        '''
        Show effective settings
        '''
        return scfg.to_dict()

    def main_execute(self):
        '''
        See azimage.common.Application.main_execute()
        '''
        action = self._args_saved['action']
        if not self.command.handle(action, ('printable', 'simple', 'table'), self):
            self.logger.error("Unknown action %r", action)
            raise ApplicationExit(1)
        raise ApplicationExit(0)

ImageTool.command = command

def main():
    '''
    Console entry point
    '''
    ImageTool.main_with_args(sys.argv[1:])

if __name__ == "__main__":
    main()
