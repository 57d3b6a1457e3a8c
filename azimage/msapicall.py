#
# azimage/msapicall.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Classify Azure SDK exceptions and interpret long-running operation
status responses.

A track2 begin_* call returns an LROPoller whose polling_method()
is an ARMPolling. Its _initial_response holds the PipelineResponse
of the request that started the operation; the status URI comes from
that response's Azure-AsyncOperation header, else its Location header.
'''
import http.client
import logging
import urllib.parse

import azure.core.exceptions
import msrest.exceptions
import urllib3.exceptions

from azimage.base_defaults import LOGGER_NAME_DEFAULT
from azimage.btypes import OperationStatus
from azimage.util import getframe

URLLIB3_SDK_EXCEPTIONS = (urllib3.exceptions.HTTPError,
                          urllib3.exceptions.HTTPWarning,
                         )

AZURE_SDK_EXCEPTIONS = (azure.core.exceptions.AzureError,
                        msrest.exceptions.ClientException,
                       ) + URLLIB3_SDK_EXCEPTIONS

# Header names in the order in which they are preferred for tracking an LRO
LRO_TRACKING_HEADERS = ('Azure-AsyncOperation', 'Location')

class Caught():
    '''
    Wraps an exception raised by an SDK call so callers can ask what
    kind of failure it was without knowing which SDK raised it.
    '''
    def __init__(self, exc):
        self.exc = exc
        status = getattr(exc, 'status_code', None)
        if status is None:
            # msrest HttpOperationError keeps it on the response
            status = getattr(getattr(exc, 'response', None), 'status_code', None)
        self.status_code = status
        try:
            self.http_status = int(status)
        except (TypeError, ValueError):
            self.http_status = -1
        self.error_code = None
        if not self.is_urllib3():
            code = getattr(exc, 'error_code', None) or getattr(getattr(exc, 'error', None), 'code', None)
            if code:
                self.error_code = str(code)

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.exc)

    def any_code_matches(self, *codes):
        '''
        True when error_code equals one of codes, ignoring case
        '''
        mine = (self.error_code or '').lower()
        return bool(mine) and (mine in {c.lower() for c in codes})

    def is_conflict(self):
        return (self.http_status == http.client.CONFLICT) or isinstance(self.exc, azure.core.exceptions.ResourceExistsError)

    def is_missing(self):
        '''
        The target resource (or its group) does not exist
        '''
        return (self.http_status == http.client.NOT_FOUND) \
          or isinstance(self.exc, azure.core.exceptions.ResourceNotFoundError) \
          or self.any_code_matches('NotFound', 'ResourceNotFound', 'ResourceGroupNotFound')

    def is_urllib3(self):
        '''
        Transport-level failure below the SDK
        '''
        return isinstance(self.exc, URLLIB3_SDK_EXCEPTIONS)

    def is_throttle(self):
        return self.http_status == http.client.TOO_MANY_REQUESTS

    _REASON_CHECKS = ('is_missing', 'is_urllib3', 'is_throttle', 'is_conflict')

    def reason(self):
        '''
        Name of the first is_* check that matches, for logging; None if none do
        '''
        return next((name for name in self._REASON_CHECKS if getattr(self, name)()), None)

def operation_id_from_url(url, logger=None):
    '''
    Return the trailing operation ID of an LRO status URL
    (.../operations/<id> or .../operationStatuses/<id>), or None.
    '''
    try:
        path = urllib.parse.urlparse(url).path
    except (TypeError, ValueError) as exc:
        (logger or logging.getLogger(LOGGER_NAME_DEFAULT)).warning("%s cannot parse url=%r: %r", getframe(0), url, exc)
        return None
    parts = path.split('/')
    if len(parts) < 2 or parts[-2].lower() not in ('operations', 'operationstatuses'):
        # e.g. a request that finished without starting an operation
        return None
    return parts[-1]

def tracking_uri_from_poller(poller):
    '''
    Given an LROPoller, return the URI that reports the status
    of its operation, or None if the service did not provide one.
    '''
    polling_method = poller.polling_method()
    initial = getattr(polling_method, '_initial_response', None)
    http_response = getattr(initial, 'http_response', None)
    if http_response is None:
        return None
    for header in LRO_TRACKING_HEADERS:
        uri = http_response.headers.get(header, None)
        if uri:
            return uri
    return None

# Provisioning and operation states as ARM reports them
_STATUS_SUCCEEDED = ('succeeded',)
_STATUS_FAILED = ('failed', 'canceled', 'cancelled')

def operation_status_normalize(txt):
    '''
    Map an ARM status or provisioningState string to OperationStatus.
    Anything not recognized is IN_PROGRESS.
    '''
    if not txt:
        return OperationStatus.UNKNOWN
    tmp = str(txt).lower()
    if tmp in _STATUS_SUCCEEDED:
        return OperationStatus.SUCCEEDED
    if tmp in _STATUS_FAILED:
        return OperationStatus.FAILED
    return OperationStatus.IN_PROGRESS

def operation_status_from_response(status_code, body):
    '''
    Interpret one GET of an LRO tracking URI.
    status_code is the int HTTP status; body is the decoded JSON or None.
    '''
    if status_code == http.client.ACCEPTED:
        return OperationStatus.IN_PROGRESS
    if status_code == http.client.NOT_FOUND:
        return OperationStatus.UNKNOWN
    if isinstance(body, dict) and body.get('status', None):
        return operation_status_normalize(body['status'])
    if status_code in (http.client.OK, http.client.NO_CONTENT):
        # Location-style polling: a final 200/204 with no status means done
        return OperationStatus.SUCCEEDED
    return OperationStatus.UNKNOWN
