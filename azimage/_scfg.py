#
# azimage/_scfg.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
"scfg" is roughly "settings configuration".
This manages the settings read from the defaults section of the
config file, with built-in defaults for anything not set there.
'''
import re
import threading

import azimage._paths
from azimage import base_defaults
from azimage.base_defaults import EXC_VALUE_DEFAULT
from azimage.btypes import ReadOnlyDict
from azimage.util import seconds_normalize

# Storage container names: 3-63 lowercase letters, digits, and
# single hyphens, starting and ending with a letter or digit.
RE_CONTAINER_NAME_ABS = re.compile(r'^[a-z0-9](?!.*--)[a-z0-9\-]{1,61}[a-z0-9]$')

# Used to build resource group names as <prefix>-<region>
RE_RESOURCE_NAME_PREFIX_ABS = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9\-_\.]{0,40}$')

RE_LOCATION_ABS = re.compile(r'^[a-z0-9]+$')

class _Scfg():
    '''
    Settings from the defaults section of the config file
    '''
    def __init__(self):
        self._lock = threading.RLock()
        self._filename = None
        self._data = None

        # Overrides consulted before the config file; tests set these
        self.test_values = dict()

    def reset(self):
        '''
        Forget loaded values so the next lookup rereads the config
        '''
        with self._lock:
            self._filename = None
            self._data = None
            self.test_values = dict()

    # Values used when the config does not set the key
    _DEFAULTS = ReadOnlyDict({'capture_container_name': base_defaults.CAPTURE_CONTAINER_NAME_DEFAULT,
                              'location_default': base_defaults.LOCATION_DEFAULT_FALLBACK,
                              'poll_interval': base_defaults.POLL_INTERVAL_DEFAULT,
                              'resource_name_prefix': base_defaults.RESOURCE_NAME_PREFIX_DEFAULT,
                              'tags': ReadOnlyDict(),
                              'timeout_image_available': float(base_defaults.TIMEOUT_IMAGE_AVAILABLE_DEFAULT),
                              'timeout_image_captured': float(base_defaults.TIMEOUT_IMAGE_CAPTURED_DEFAULT),
                              'timeout_node_suspended': float(base_defaults.TIMEOUT_NODE_SUSPENDED_DEFAULT),
                              'timeout_resource_deleted': float(base_defaults.TIMEOUT_RESOURCE_DELETED_DEFAULT),
                              'user_threads': base_defaults.USER_THREADS_DEFAULT,
                             })

    def _load(self, exc_value=EXC_VALUE_DEFAULT):
        '''
        Read and validate the defaults section on first use
        '''
        with self._lock:
            if self._data is None:
                paths = azimage._paths.paths # pylint: disable=protected-access
                filename = paths.config_filename
                data = paths.config_dict_from_data(filename, paths.config_data, 'defaults', exc_value=exc_value)
                self._data = self._validate(data, exc_value=exc_value)
                self._filename = filename

    def _validate(self, data, hnamestack='_dh', unamestack='defaults', exc_value=EXC_VALUE_DEFAULT):
        '''
        Return a validated, read-only copy of data (the defaults dict
        from the config file).

        A value at defaults[a][b] is checked by the method _dh__a__b when
        one exists; its return value replaces the original. Without a
        handler, scalars pass through unchanged, dicts and lists are
        walked, and anything else is rejected.

        unamestack names the value for error messages, e.g. defaults[a][b].
        hnamestack is the matching handler name, e.g. _dh__a__b.
        '''
        handler = getattr(self, hnamestack, None)
        if handler:
            return handler(data, unamestack, exc_value)
        if isinstance(data, (bool, float, int, str)):
            return data
        if isinstance(data, dict):
            return ReadOnlyDict({kk : self._validate(vv, unamestack=f'{unamestack}[{kk}]', hnamestack=f'{hnamestack}__{kk}', exc_value=exc_value) for kk, vv in data.items()})
        if isinstance(data, list):
            return tuple(self._validate(vv, unamestack=f'{unamestack}[{idx}]', hnamestack=f'{hnamestack}__contents', exc_value=exc_value) for idx, vv in enumerate(data))
        raise exc_value("%s has unexpected type %s" % (unamestack, type(data)))

    @staticmethod
    def _dh__subscription_id(value, unamestack, exc_value):
        '''
        Validate subscription_id as a non-empty string
        '''
        if not isinstance(value, str) or (not value.strip()):
            raise exc_value("%s must be a non-empty string" % unamestack)
        return value.strip()

    @staticmethod
    def _dh__resource_name_prefix(value, unamestack, exc_value):
        if not isinstance(value, str) or (not RE_RESOURCE_NAME_PREFIX_ABS.search(value)):
            raise exc_value("%s %r is not a valid resource name prefix" % (unamestack, value))
        return value

    @staticmethod
    def _dh__location_default(value, unamestack, exc_value):
        if not isinstance(value, str) or (not RE_LOCATION_ABS.search(value)):
            raise exc_value("%s %r is not a valid location" % (unamestack, value))
        return value

    @staticmethod
    def _dh__capture_container_name(value, unamestack, exc_value):
        if not isinstance(value, str) or (not RE_CONTAINER_NAME_ABS.search(value)):
            raise exc_value("%s %r is not a valid storage container name" % (unamestack, value))
        return value

    @staticmethod
    def _dh__timeout_node_suspended(value, unamestack, exc_value):
        return seconds_normalize(value, unamestack, exc_value=exc_value)

    _dh__timeout_image_available = _dh__timeout_node_suspended
    _dh__timeout_image_captured = _dh__timeout_node_suspended
    _dh__timeout_resource_deleted = _dh__timeout_node_suspended

    @staticmethod
    def _dh__poll_interval(value, unamestack, exc_value):
        return seconds_normalize(value, unamestack, allow_zero=False, exc_value=exc_value)

    @staticmethod
    def _dh__user_threads(value, unamestack, exc_value):
        if isinstance(value, bool) or (not isinstance(value, int)) or (value < 1):
            raise exc_value("%s must be a positive integer" % unamestack)
        return value

    @staticmethod
    def _dh__tags(value, unamestack, exc_value):
        '''
        tags is a dict of str to str
        '''
        if value is None:
            return ReadOnlyDict()
        if not isinstance(value, dict):
            raise exc_value("%s must be a dict" % unamestack)
        for k, v in value.items():
            if (not isinstance(k, str)) or (not k):
                raise exc_value("%s has invalid tag name %r" % (unamestack, k))
            if not isinstance(v, (str, int, float)) or isinstance(v, bool):
                raise exc_value("%s[%s] has unexpected type %s" % (unamestack, k, type(v).__name__))
        return ReadOnlyDict({k : str(v) for k, v in value.items()})

    @staticmethod
    def _key_valid(name):
        return isinstance(name, str) and bool(name) and (not name.startswith('_'))

    def _lookup(self, name):
        '''
        Return (found, value), checking test_values, then the
        config file, then _DEFAULTS
        '''
        with self._lock:
            if name in self.test_values:
                return (True, self.test_values[name])
            self._load()
            for source in (self._data, self._DEFAULTS):
                if name in source:
                    return (True, source[name])
        return (False, None)

    def __getattr__(self, name):
        if not self._key_valid(name):
            raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name))
        found, value = self._lookup(name)
        if not found:
            raise AttributeError("%r object has no attribute %r; check configuration file %s" % (type(self).__name__, name, self._filename))
        return value

    def to_dict(self) -> dict:
        '''
        Effective settings: defaults overlaid by the file, then test_values
        '''
        with self._lock:
            self._load()
            return {**self._DEFAULTS, **self._data, **self.test_values}

    def get(self, name, defaultvalue):
        '''
        Like dict.get(). Invalid names also return defaultvalue.
        '''
        if not self._key_valid(name):
            return defaultvalue
        found, value = self._lookup(name)
        return value if found else defaultvalue

    def tget(self, key, dtype, exc_value=EXC_VALUE_DEFAULT):
        '''
        Typed get. dtype is a type or a tuple of types. An unset key
        yields an empty instance of dtype (the first one for a tuple);
        a value of the wrong type raises exc_value.
        '''
        ret = self.get(key, None)
        if ret is None:
            return dtype[0]() if isinstance(dtype, tuple) else dtype()
        if not isinstance(ret, dtype):
            raise exc_value(f"{self._filename!r}[{key!r}] has unexpected type {type(ret)}")
        return ret

scfg = _Scfg()
