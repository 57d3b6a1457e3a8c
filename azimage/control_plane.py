#
# azimage/control_plane.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Azure-backed control planes used by the image workflows.
Every method here is a single synchronous remote call (or a call that
starts a long-running operation and returns its tracking URI without
waiting). Read paths return None or an empty list for missing
resources; everything else propagates.
'''
import logging
import threading

from azure.core.rest import HttpRequest
import azure.identity
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import (AvailabilitySet,
                                       Image as AzImage,
                                       Sku,
                                       SubResource,
                                       VirtualMachineCaptureParameters,
                                      )
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.network.models import (NetworkSecurityGroup,
                                       SecurityRule as AzSecurityRule,
                                      )
from azure.mgmt.resource import ResourceManagementClient

from azimage.base_defaults import LOGGER_NAME_DEFAULT
from azimage.msapicall import (AZURE_SDK_EXCEPTIONS,
                               Caught,
                               operation_id_from_url,
                               operation_status_from_response,
                               tracking_uri_from_poller,
                              )
from azimage.records import (AvailabilitySetRecord,
                             ImageRecord,
                             ResourceDefinition,
                             ResourceGroupEntry,
                             SecurityGroupRecord,
                             SecurityRule,
                             VmRecord,
                            )
from azimage.util import expand_item_pformat

def _enum_value(value):
    return getattr(value, 'value', value)

class ControlPlane():
    '''
    Compute, image, security-group, job-status, resource-group,
    and availability-set operations for one subscription.
    '''
    def __init__(self, subscription_id, credential=None, logger=None):
        if not subscription_id:
            raise ValueError("'subscription_id' not specified")
        self.subscription_id = subscription_id
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self._credential = credential
        self._az_client_gen_lock = threading.RLock()
        self._az_compute_cachedclient = None
        self._az_network_cachedclient = None
        self._az_resource_cachedclient = None

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.subscription_id)

    ######################################################################
    # clients

    @property
    def credential(self):
        '''
        Getter: credential shared by all clients
        '''
        with self._az_client_gen_lock:
            if self._credential is None:
                self._credential = azure.identity.DefaultAzureCredential()
            return self._credential

    def _az_client_gen_property(self, name, client_class, **kwargs):
        '''
        Generate self.<name> on the first call and then reuse it,
        because some of these clients are expensive to construct.
        '''
        with self._az_client_gen_lock:
            ret = getattr(self, name, None)
            if ret is None:
                ret = client_class(self.credential, self.subscription_id, **kwargs)
                setattr(self, name, ret)
            return ret

    @property
    def _az_compute_client(self) -> ComputeManagementClient:
        '''
        Getter: self._az_compute_client, generated on the first call and then cached
        '''
        return self._az_client_gen_property('_az_compute_cachedclient', ComputeManagementClient)

    @property
    def _az_network_client(self) -> NetworkManagementClient:
        '''
        Getter: self._az_network_client, generated on the first call and then cached
        '''
        return self._az_client_gen_property('_az_network_cachedclient', NetworkManagementClient)

    @property
    def _az_resource_client(self) -> ResourceManagementClient:
        '''
        Getter: self._az_resource_client, generated on the first call and then cached
        '''
        return self._az_client_gen_property('_az_resource_cachedclient', ResourceManagementClient)

    ######################################################################
    # compute

    @staticmethod
    def _vm_power_state(vm):
        '''
        Return the last PowerState/* status code of vm, or None
        '''
        instance_view = getattr(vm, 'instance_view', None)
        statuses = getattr(instance_view, 'statuses', None) or list()
        codes = [x.code for x in statuses if x.code and x.code.startswith('PowerState/')]
        return codes[-1] if codes else None

    def vm_get(self, resource_group, vm_name):
        '''
        Return VmRecord or None
        '''
        try:
            vm = self._az_compute_client.virtual_machines.get(resource_group, vm_name, expand='instanceView')
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                return None
            raise
        return VmRecord(id=vm.id,
                        name=vm.name,
                        location=vm.location,
                        power_state=self._vm_power_state(vm),
                        provisioning_state=vm.provisioning_state)

    def vm_stop(self, resource_group, vm_name):
        '''
        Issue power off. Does not wait; use a node-suspended waiter.
        '''
        self.logger.info(">> stopping node %s/%s", resource_group, vm_name)
        poller = self._az_compute_client.virtual_machines.begin_power_off(resource_group, vm_name, polling=False)
        uri = tracking_uri_from_poller(poller)
        self.logger.debug("node %s/%s power_off operation_id=%s", resource_group, vm_name, operation_id_from_url(uri, logger=self.logger) if uri else None)
        return uri

    def vm_generalize(self, resource_group, vm_name):
        '''
        Generalize the named VM. The VM must be stopped.
        '''
        self.logger.info(">> generalizing node %s/%s", resource_group, vm_name)
        self._az_compute_client.virtual_machines.generalize(resource_group, vm_name)

    def vm_capture(self, resource_group, vm_name, vhd_prefix, container_name):
        '''
        Issue capture of vm_name into container_name.
        Return the tracking URI of the capture operation or None.
        '''
        self.logger.info(">> capturing node %s/%s to container %s", resource_group, vm_name, container_name)
        params = VirtualMachineCaptureParameters(vhd_prefix=vhd_prefix,
                                                 destination_container_name=container_name,
                                                 overwrite_vhds=True)
        poller = self._az_compute_client.virtual_machines.begin_capture(resource_group, vm_name, params, polling=False)
        return tracking_uri_from_poller(poller)

    ######################################################################
    # job/operation status

    def _status_get(self, uri):
        '''
        GET an operation tracking URI through the compute client's pipeline,
        which carries the ARM credential.
        Return (status_code, body) where body is decoded JSON or None.
        '''
        response = self._az_compute_client.send_request(HttpRequest('GET', uri))
        if response.status_code >= 400 and response.status_code != 404:
            response.raise_for_status()
        body = None
        if response.text():
            try:
                body = response.json()
            except ValueError:
                self.logger.warning("operation %s returned non-JSON body", operation_id_from_url(uri, logger=self.logger))
        return (response.status_code, body)

    def operation_status(self, uri):
        '''
        Return OperationStatus for the operation tracked by uri
        '''
        status_code, body = self._status_get(uri)
        return operation_status_from_response(status_code, body)

    def capture_status(self, uri):
        '''
        Return the list of ResourceDefinition produced by the
        capture operation tracked by uri
        '''
        _, body = self._status_get(uri)
        if not isinstance(body, dict):
            return list()
        props = body.get('properties', None) or dict()
        output = props.get('output', None) or dict()
        resources = output.get('resources', None) or list()
        return [ResourceDefinition(name=x.get('name', None),
                                   type=x.get('type', None),
                                   location=x.get('location', None),
                                   properties=x.get('properties', None))
                for x in resources]

    ######################################################################
    # images

    @staticmethod
    def _image_record(image):
        source = getattr(image, 'source_virtual_machine', None)
        return ImageRecord(id=image.id,
                           name=image.name,
                           location=image.location,
                           source_vm_id=getattr(source, 'id', None),
                           provisioning_state=image.provisioning_state,
                           tags=dict(image.tags or dict()))

    def image_create(self, resource_group, image_name, location, source_vm_id):
        '''
        Create an image record from the generalized VM source_vm_id.
        Does not wait; use an image-available waiter.
        '''
        self.logger.info(">> creating image %s/%s from %s", resource_group, image_name, source_vm_id)
        params = AzImage(location=location, source_virtual_machine=SubResource(id=source_vm_id))
        poller = self._az_compute_client.images.begin_create_or_update(resource_group, image_name, params, polling=False)
        image = poller.result()
        if image is None:
            # Synchronous-looking create with no body; read it back.
            return self.image_get(resource_group, image_name)
        return self._image_record(image)

    def image_get(self, resource_group, image_name):
        '''
        Return ImageRecord or None
        '''
        try:
            image = self._az_compute_client.images.get(resource_group, image_name)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                return None
            raise
        return self._image_record(image)

    def image_list(self, resource_group):
        '''
        Return a list of ImageRecord in resource_group
        '''
        try:
            return [self._image_record(x) for x in self._az_compute_client.images.list_by_resource_group(resource_group)]
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                return list()
            raise

    def image_delete(self, resource_group, image_name):
        '''
        Issue delete. Return the tracking URI, or None if
        the image does not exist.
        '''
        self.logger.info(">> deleting image %s/%s", resource_group, image_name)
        try:
            poller = self._az_compute_client.images.begin_delete(resource_group, image_name, polling=False)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                self.logger.info("image %s/%s does not exist", resource_group, image_name)
                return None
            raise
        return tracking_uri_from_poller(poller)

    ######################################################################
    # network security groups

    @staticmethod
    def _az_security_rule(rule):
        return AzSecurityRule(name=rule.name,
                              protocol=_enum_value(rule.protocol),
                              source_address_prefix=rule.source_address_prefix,
                              source_port_range=rule.source_port_range,
                              destination_address_prefix=rule.destination_address_prefix,
                              destination_port_range=rule.destination_port_range,
                              direction=_enum_value(rule.direction),
                              access=_enum_value(rule.access),
                              priority=rule.priority)

    @staticmethod
    def _security_rule(az_rule):
        return SecurityRule(name=az_rule.name,
                            protocol=_enum_value(az_rule.protocol),
                            source_address_prefix=az_rule.source_address_prefix,
                            source_port_range=az_rule.source_port_range,
                            destination_address_prefix=az_rule.destination_address_prefix,
                            destination_port_range=az_rule.destination_port_range,
                            direction=_enum_value(az_rule.direction),
                            access=_enum_value(az_rule.access),
                            priority=az_rule.priority)

    def nsg_create_or_update(self, resource_group, nsg_name, location, tags, rules):
        '''
        Create or update one network security group holding rules.
        Return SecurityGroupRecord.
        '''
        params = NetworkSecurityGroup(location=location,
                                      tags=dict(tags or dict()),
                                      security_rules=[self._az_security_rule(x) for x in rules])
        self.logger.info(">> creating security group %s/%s with rules:\n%s", resource_group, nsg_name, expand_item_pformat(rules, expand_enum=True))
        op = self._az_network_client.network_security_groups.begin_create_or_update(resource_group, nsg_name, params)
        nsg = op.result()
        return SecurityGroupRecord(id=nsg.id,
                                   name=nsg.name,
                                   location=nsg.location,
                                   tags=dict(nsg.tags or dict()),
                                   rules=[self._security_rule(x) for x in (nsg.security_rules or list())])

    ######################################################################
    # resource groups

    def resource_group_get(self, resource_group):
        '''
        Return ResourceGroupEntry or None
        '''
        try:
            rg = self._az_resource_client.resource_groups.get(resource_group)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                return None
            raise
        return ResourceGroupEntry(name=rg.name, location=rg.location)

    def resource_group_create(self, resource_group, location, tags=None):
        '''
        Create or update resource_group. Return ResourceGroupEntry.
        '''
        parameters = {'location': location,
                      'tags': dict(tags or dict()),
                     }
        self.logger.info("create resource_group %s with parameters:\n%s", resource_group, expand_item_pformat(parameters))
        rg = self._az_resource_client.resource_groups.create_or_update(resource_group, parameters)
        return ResourceGroupEntry(name=rg.name, location=rg.location)

    def resource_group_delete(self, resource_group):
        '''
        Issue resource group delete. Return the tracking URI,
        or None if the resource group does not exist.
        '''
        self.logger.info("delete resource group %s", resource_group)
        try:
            poller = self._az_resource_client.resource_groups.begin_delete(resource_group, polling=False)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                self.logger.info("resource group %s does not exist", resource_group)
                return None
            self.logger.warning("cannot delete resource group %r [%s]: %r", resource_group, caught.reason(), exc)
            raise
        return tracking_uri_from_poller(poller)

    ######################################################################
    # availability sets

    @staticmethod
    def _availability_set_record(avset):
        return AvailabilitySetRecord(id=avset.id,
                                     name=avset.name,
                                     location=avset.location,
                                     tags=dict(avset.tags or dict()),
                                     fault_domains=avset.platform_fault_domain_count,
                                     update_domains=avset.platform_update_domain_count)

    def availability_set_get(self, resource_group, name):
        '''
        Return AvailabilitySetRecord or None
        '''
        try:
            avset = self._az_compute_client.availability_sets.get(resource_group, name)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            if caught.is_missing():
                return None
            raise
        return self._availability_set_record(avset)

    def availability_set_create(self, resource_group, name, location, tags=None, fault_domains=2, update_domains=5):
        '''
        Create or update an availability set for managed disks.
        Return AvailabilitySetRecord.
        '''
        self.logger.info(">> creating availability set %s/%s in %s", resource_group, name, location)
        params = AvailabilitySet(location=location,
                                 tags=dict(tags or dict()),
                                 platform_fault_domain_count=fault_domains,
                                 platform_update_domain_count=update_domains,
                                 sku=Sku(name='Aligned'))
        avset = self._az_compute_client.availability_sets.create_or_update(resource_group, name, params)
        return self._availability_set_record(avset)
