#
# azimage/util.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Small helpers for argument parsing, printing, and value normalization.
'''
import argparse
import datetime
import enum
import inspect
import logging
import pprint
import sys
import time

from azimage.base_defaults import (EXC_VALUE_DEFAULT,
                                   PF,
                                  )

class ArgExplicit(argparse.Action):
    '''
    argparse action (action=ArgExplicit) that stores the value and
    also records the destination name in namespace.args_explicit.
    '''
    def __call__(self, parser, namespace, value, option_string=None):
        setattr(namespace, self.dest, value)
        explicit = getattr(namespace, 'args_explicit', None)
        if explicit is None:
            explicit = set()
            setattr(namespace, 'args_explicit', explicit)
        explicit.add(self.dest)

class ArgumentParser(argparse.ArgumentParser):
    '''
    ArgumentParser whose argument groups can be looked up by title
    '''
    def get_argument_group(self, title, *args, **kwargs):
        '''
        Return the argument group with this title, adding it if absent
        '''
        for group in self._action_groups:
            if group.title == title:
                return group
        return self.add_argument_group(title, *args, **kwargs)

def getframe(idx):
    '''
    Return "function:line" for the frame idx levels above the caller
    (0 is the caller itself).
    '''
    f = sys._getframe(idx+1) # pylint: disable=protected-access
    return "%s:%s" % (f.f_code.co_name, f.f_lineno)

_EXPAND_DEPTH_MAX = 100

def expand_item(item, expand_enum=False):
    '''
    Convert item into nested dicts, lists, and scalars for printing.
    Objects become dicts of their attributes (or slots). Cycles are
    replaced with a marker string.
    '''
    return _expand_item(item, 0, frozenset(), expand_enum)

def _expand_item(item, depth, seen, expand_enum):
    if id(item) in seen:
        return "SEEN %r" % item
    if (depth >= _EXPAND_DEPTH_MAX) or (item is None):
        return item
    if isinstance(item, enum.Enum):
        return item.value if expand_enum else item
    if isinstance(item, (bool, bytes, datetime.datetime, float, int, str)):
        return item
    if isinstance(item, logging.Logger) or inspect.isclass(item) or inspect.isroutine(item) or inspect.ismodule(item) or inspect.isgenerator(item):
        return repr(item)
    seen = seen | {id(item)}
    depth += 1
    if isinstance(item, (frozenset, list, set, tuple)):
        ret = [_expand_item(x, depth, seen, expand_enum) for x in item]
        return tuple(ret) if isinstance(item, tuple) else ret
    if not isinstance(item, dict):
        slots = getattr(type(item), '__slots__', None)
        if slots:
            item = {k : getattr(item, k, None) for k in slots}
        elif hasattr(item, '__dict__'):
            item = vars(item)
        else:
            return repr(item)
    return {_expand_item(k, depth, seen, expand_enum) : _expand_item(v, depth, seen, expand_enum) for k, v in item.items()}

def indent_pformat(item, prefix=PF):
    '''
    pprint.pformat(item) (or item itself if it is a str)
    with prefix at the start of every line
    '''
    txt = item if isinstance(item, str) else pprint.pformat(item)
    return '\n'.join(prefix + line for line in txt.splitlines())

def expand_item_pformat(item, prefix=PF, expand_enum=False):
    '''
    indent_pformat() of expand_item()
    '''
    return indent_pformat(expand_item(item, expand_enum=expand_enum), prefix=prefix)

def elapsed(ts0, ts1=None):
    '''
    Return the amount of time elapsed since ts0.
    If ts1 is provided, this is the time elapsed from ts0 to ts1.
    If ts1 is not provided, this is the time elapsed from ts0 to now
    on the monotonic clock.
    '''
    if ts1 is None:
        ts1 = time.monotonic()
    return max(ts1 - ts0, 0.0)

def log_level_normalize(value, exc_value=EXC_VALUE_DEFAULT):
    '''
    Given a log level as an int or a name such as 'debug',
    return the corresponding int.
    '''
    if isinstance(value, bool):
        raise exc_value("invalid log level %r" % value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        tmp = value.strip()
        if tmp.isdigit():
            return int(tmp)
        ret = logging.getLevelName(tmp.upper())
        if isinstance(ret, int):
            return ret
    raise exc_value("invalid log level %r" % value)

def seconds_normalize(value, key, allow_zero=True, exc_value=EXC_VALUE_DEFAULT):
    '''
    Return value as a non-negative float number of seconds.
    key names the setting for error messages.
    '''
    if isinstance(value, bool) or (not isinstance(value, (int, float, str))):
        raise exc_value("%s: expected number of seconds, not %s" % (key, type(value).__name__))
    try:
        ret = float(value)
    except ValueError as exc:
        raise exc_value("%s: cannot interpret %r as seconds" % (key, value)) from exc
    if ret < 0.0:
        raise exc_value("%s: may not be negative" % key)
    if (not allow_zero) and (ret == 0.0):
        raise exc_value("%s: must be positive" % key)
    return ret
