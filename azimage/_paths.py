#
# azimage/_paths.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Support for locating and loading the configuration file

Environment variables:
  AZIMAGE_CONFIG - location of the YAML config file
'''
import copy
import os
import threading

import yaml

from azimage.base_defaults import (ENVIRON_CONFIG_PATH,
                                   EXC_VALUE_DEFAULT,
                                  )
from azimage.exceptions import (ApplicationExit,
                                ConfigNotFoundError,
                               )

class Paths():
    '''
    Locates the YAML config file and caches its parsed contents.
    Module-level singleton paths; tests reset() it between cases.
    '''
    def __init__(self):
        self._config_lock = threading.RLock()
        self._config_path = None
        self._config_data = None

    def reset(self, config_filename='', config_data=None):
        '''
        Discard cached content. Optionally set the filename and/or data.
        '''
        with self._config_lock:
            self._config_path = None
            self._config_data = None
            if config_filename:
                self._config_path_set(config_filename)
            if config_data is not None:
                self._config_data_set(config_data)

    ######################################################################
    # config_filename

    @property
    def config_filename(self):
        '''
        Getter for config filename. None when no config file is requested,
        in which case built-in defaults apply.
        '''
        with self._config_lock:
            if self._config_path:
                return self._config_path
            return os.environ.get(ENVIRON_CONFIG_PATH, '') or None

    @config_filename.setter
    def config_filename(self, path):
        '''
        Setter for config filename
        '''
        with self._config_lock:
            if self._config_path:
                raise ValueError("config_filename already set")
            self._config_path_set(path)

    def _config_path_set(self, path):
        '''
        Set the config filename
        '''
        with self._config_lock:
            if not isinstance(path, str):
                raise TypeError("path must be str, not %s" % type(path))
            if not path:
                raise ValueError("invalid (empty) path")
            self._config_path = path
            self._config_data = None

    ######################################################################
    # config_data

    @property
    def config_data(self):
        '''
        Read, parse, and cache the config file.
        '''
        with self._config_lock:
            if self._config_data is not None:
                return self._config_data
            filename = self.config_filename
            if not filename:
                self._config_data_set(dict())
                return self._config_data
            try:
                with open(filename, 'r') as f:
                    contents = f.read()
            except FileNotFoundError as exc:
                raise ConfigNotFoundError("config file %r not found" % filename) from exc
            try:
                data = yaml.safe_load(contents)
            except yaml.error.MarkedYAMLError as exc:
                raise ApplicationExit(f"cannot parse {filename!r}: error line {exc.problem_mark.line} column {exc.problem_mark.column}") from exc
            except yaml.error.YAMLError as exc:
                # yaml.error.YAMLError is more readable with str than repr
                raise ApplicationExit(f"cannot parse {filename!r}: error {exc}") from exc
            if data is None:
                # empty file - interpret it as an empty dict
                data = dict()
            if not isinstance(data, dict):
                raise ApplicationExit(f"content of config file {filename!r} is not a dict")
            self._config_data_set(data)
            return self._config_data

    def _config_data_set(self, data):
        with self._config_lock:
            if not isinstance(data, dict):
                raise TypeError("config data must be dict, not %s" % type(data))
            # Force a copy so that callers never share a ref with what we use here
            self._config_data = copy.deepcopy(data)

    @staticmethod
    def config_dict_from_data(filename, data, key, exc_value=EXC_VALUE_DEFAULT) -> dict:
        '''
        Return data[key], which must be a dict, or an empty dict when
        key is absent. filename is used only in the error message.
        '''
        assert isinstance(data, dict)
        ret = data.get(key, None)
        if ret is None:
            return dict()
        if not isinstance(ret, dict):
            raise exc_value(f"{key} in {filename} has type {type(ret)}; expected dict")
        return ret

paths = Paths()
