#
# azimage/command.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Registry of command-line actions. Methods become actions by decoration:

    command = Command()

    class Tool(Application):
        @command.printable
        def image_get(self):
            ...

The decoration name says what happens to the handler's return value:
  simple     discard it
  printable  print it (pretty-printed unless it is a str)
  table      print it as a table; it must be a list of records or dicts
'''
import functools

from tabulate import tabulate

from azimage.util import expand_item_pformat

class _Item():
    '''
    One registered handler
    '''
    def __init__(self, decorator, func):
        self.decorator = decorator
        self.func = func
        self.name = func.__name__

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self.decorator, self.name)

class Command():
    '''
    Maps action names to decorated handlers. Any attribute that is not
    private and not in RESERVED_NAMES is a decorator.
    '''
    def __init__(self):
        self._items = dict() # name -> _Item

    RESERVED_NAMES = ('actions',
                      'can_handle',
                      'commands',
                      'handle',
                      'print',
                      'print_table',
                     )

    @classmethod
    def _name_valid(cls, name):
        return isinstance(name, str) and bool(name) and (not name.startswith('_')) and (name not in cls.RESERVED_NAMES)

    def __getattr__(self, name):
        if not self._name_valid(name):
            raise AttributeError("'%s' object has no attribute '%s'" % (type(self).__name__, name))
        return functools.partial(self._register, name)

    def _register(self, decorator, func):
        item = _Item(decorator, func)
        if not self._name_valid(item.name):
            raise ValueError("cannot register reserved name %r as an action" % item.name)
        if item.name in self._items:
            raise ValueError("action %r is already registered" % item.name)
        self._items[item.name] = item
        return func

    @property
    def actions(self):
        '''
        Sorted names of all registered actions
        '''
        return sorted(self._items)

    def _lookup(self, name, decorators):
        if isinstance(decorators, str):
            decorators = (decorators,)
        item = self._items.get(name, None)
        if (item is None) or (item.decorator not in decorators):
            return None
        return item

    def can_handle(self, name, decorators):
        '''
        Return whether name is registered with one of decorators
        '''
        return self._lookup(name, decorators) is not None

    def handle(self, name, decorators, *args, **kwargs):
        '''
        Call the handler for name with args and kwargs and dispose of
        its result according to its decoration. Return False without
        calling anything if name is not registered with one of decorators
        (a str or an iterable of str).
        '''
        item = self._lookup(name, decorators)
        if item is None:
            return False
        ret = item.func(*args, **kwargs)
        if item.decorator == 'printable':
            self.print(ret)
        elif item.decorator == 'table':
            self.print_table(ret)
        return True

    def commands(self, decorators=None):
        '''
        Return {name: func} for handlers with one of decorators,
        or for all handlers if decorators is None
        '''
        if isinstance(decorators, str):
            decorators = (decorators,)
        return {name : item.func for name, item in self._items.items() if (decorators is None) or (item.decorator in decorators)}

    @staticmethod
    def print(item):
        '''
        Print a handler result. Sequences print one element at a time.
        '''
        if isinstance(item, (list, set, tuple)):
            for x in item:
                Command.print(x)
        elif isinstance(item, str):
            print(item)
        else:
            print(expand_item_pformat(item, prefix='', expand_enum=True))

    @staticmethod
    def print_table(items):
        '''
        Print records (anything with to_dict()) or dicts as one table.
        Enum cells print as their values.
        '''
        rows = list()
        for item in (items or list()):
            row = item.to_dict() if hasattr(item, 'to_dict') else dict(item)
            rows.append({k : getattr(v, 'value', v) for k, v in row.items()})
        print(tabulate(rows, headers='keys'))
