#
# azimage/cacher.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Provide generic caching functionality.
What is here has semantics not available through functools:
at most one load is in flight per key, and a failed load
is not remembered.
'''
import concurrent.futures
import threading

class Cache():
    '''
    Generic single-flight key/value cache.
    The intended use is cases where the corresponding value
    can be expensive to load or where loading has side effects
    (such as creating a cloud resource) that must not happen twice.

    Each key maps to a concurrent.futures.Future. The lock is held only
    to insert-if-absent; the loader runs with no lock held, so
    distinct keys load independently.

    loader, if provided, is the default loader. It is invoked as loader(key).
    '''
    def __init__(self, loader=None):
        self._c_lock = threading.Lock()
        self._c_data = dict() # key -> Future
        self._c_loader = loader

    def __repr__(self):
        return "<%s %s keys=%d>" % (type(self).__name__, hex(id(self)), len(self.keys()))

    def get(self, key, loader=None, *args, **kwargs):
        '''
        Fetch the value associated with key. If the value
        is not already cached, invoke loader(*args, **kwargs)
        to populate the cache entry, or self's default loader
        as loader(key) if none is given here.

        If more than one thread misses in the cache at the same time,
        the first thread performs the load and the others wait on it.
        When the load completes, every waiter gets the same value.
        When the load raises, every thread that was waiting on that load
        gets the same exception, and the entry is dropped so that a
        subsequent call loads again.
        '''
        if loader is None:
            if self._c_loader is None:
                raise TypeError("%s.get: no loader for key %r" % (type(self).__name__, key))
            loader = self._c_loader
            args = (key,)
            kwargs = dict()

        with self._c_lock:
            fut = self._c_data.get(key, None)
            owner = fut is None
            if owner:
                fut = concurrent.futures.Future()
                self._c_data[key] = fut

        if not owner:
            return fut.result()

        try:
            val = loader(*args, **kwargs)
        except BaseException as exc:
            # Drop the entry before publishing the failure so that no new
            # caller can attach to a future that is about to fail.
            with self._c_lock:
                if self._c_data.get(key, None) is fut:
                    self._c_data.pop(key)
            fut.set_exception(exc)
            raise

        fut.set_result(val)
        return val

    get_or_load = get

    def get_if_present(self, key, default=None):
        '''
        Return the cached value for key without loading or blocking.
        A load that is still in flight counts as absent.
        '''
        with self._c_lock:
            fut = self._c_data.get(key, None)
        if (fut is None) or (not fut.done()):
            return default
        # Failed futures are removed before they complete, so a done
        # future here always holds a value.
        return fut.result()

    def invalidate(self, key):
        '''
        Drop the completed entry for key. A load that is in flight
        is unaffected. Returns whether an entry was dropped.
        '''
        with self._c_lock:
            fut = self._c_data.get(key, None)
            if (fut is not None) and fut.done():
                self._c_data.pop(key)
                return True
        return False

    def reset(self):
        '''
        Discard all completed entries.
        '''
        with self._c_lock:
            for key in [k for k, v in self._c_data.items() if v.done()]:
                self._c_data.pop(key)

    def keys(self):
        '''
        Return a list of keys with completed values
        '''
        with self._c_lock:
            return [k for k, v in self._c_data.items() if v.done()]
