#
# azimage/scopedid.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Composite identities for resources that are named only within
a region and a logical scope.

ScopedId is the canonical key type. Peers compare on all fields.
RegionAndId is the narrowed projection (ScopedId.narrow()) for lookups
that only know region and id. A ScopedId compares equal to a RegionAndId
when region and id match, regardless of scope. Every type here hashes
on (region, id) only, so mixing them as dict keys stays consistent with
that narrowed comparison.
'''
from azimage.base_defaults import (EXC_VALUE_DEFAULT,
                                   NODE_SCOPE_DEFAULT,
                                  )
from azimage.exceptions import MalformedIdentity

SEP = '/'

PORT_MIN = 1
PORT_MAX = 65535

def _check_field(name, value, exc_value):
    '''
    Validate one identity field; return it
    '''
    if not isinstance(value, str):
        raise exc_value("%s must be str, not %s" % (name, type(value).__name__))
    if not value:
        raise exc_value("%s may not be empty" % name)
    return value

class RegionAndId():
    '''
    Narrowed view of a ScopedId: just region and id.
    '''
    __slots__ = ('_region', '_id')

    def __init__(self, region, id_, exc_value=EXC_VALUE_DEFAULT):
        self._region = _check_field('region', region, exc_value)
        self._id = _check_field('id', id_, exc_value)

    @property
    def region(self):
        return self._region

    @property
    def id(self):
        return self._id

    def narrow(self):
        return self

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self._region, self._id)

    def __str__(self):
        return self._region + SEP + self._id

    def __eq__(self, other):
        if not isinstance(other, (RegionAndId, ScopedId)):
            return NotImplemented
        return (self._region == other.region) and (self._id == other.id)

    def __hash__(self):
        return hash((self._region, self._id))

class ScopedId():
    '''
    Immutable (region, scope, id) identity.
    encode() and decode() convert to and from region/scope/id.
    '''
    __slots__ = ('_region', '_scope', '_id')

    def __init__(self, region, scope, id_, exc_value=EXC_VALUE_DEFAULT):
        self._region = _check_field('region', region, exc_value)
        self._scope = _check_field('scope', scope, exc_value)
        self._id = _check_field('id', id_, exc_value)

    @classmethod
    def create(cls, region, scope, id_):
        '''
        Construct from fields; raises MalformedIdentity if any is empty
        '''
        return ScopedId(region, scope, id_, exc_value=MalformedIdentity)

    @property
    def region(self):
        return self._region

    @property
    def scope(self):
        return self._scope

    @property
    def id(self):
        return self._id

    def narrow(self):
        '''
        Return the region+id projection of this identity
        '''
        return RegionAndId(self._region, self._id)

    def scoped_id(self):
        '''
        Return this identity as a plain ScopedId
        '''
        return self

    def encode(self):
        '''
        Stable, reversible string form
        '''
        return SEP.join((self._region, self._scope, self._id))

    def __str__(self):
        return self.encode()

    def __repr__(self):
        return "%s(%r, %r, %r)" % (type(self).__name__, self._region, self._scope, self._id)

    @classmethod
    def decode(cls, text, exc_value=MalformedIdentity):
        '''
        Parse region/scope/id. id may itself contain the separator.
        '''
        if not isinstance(text, str):
            raise exc_value("cannot decode %s as %s" % (type(text).__name__, cls.__name__))
        toks = text.split(SEP, 2)
        if len(toks) < 3:
            raise exc_value("invalid scoped id %r (expected region%sscope%sid)" % (text, SEP, SEP))
        return ScopedId(toks[0], toks[1], toks[2], exc_value=exc_value)

    def __eq__(self, other):
        if isinstance(other, IngressKey):
            return NotImplemented
        if isinstance(other, ScopedId):
            return (self._region, self._scope, self._id) == (other.region, other.scope, other.id)
        if isinstance(other, RegionAndId):
            return (self._region == other.region) and (self._id == other.id)
        return NotImplemented

    def __hash__(self):
        return hash((self._region, self._id))

    def __lt__(self, other):
        if not isinstance(other, ScopedId):
            return NotImplemented
        return self.encode() < other.encode()

def node_ref_decode(text, default_scope=NODE_SCOPE_DEFAULT, exc_value=MalformedIdentity):
    '''
    Decode a node reference. Accepts region/scope/name, or
    region/name with default_scope.
    '''
    if isinstance(text, ScopedId):
        return text.scoped_id()
    if not isinstance(text, str):
        raise exc_value("cannot decode %s as a node reference" % type(text).__name__)
    toks = text.split(SEP, 2)
    if len(toks) == 2:
        return ScopedId(toks[0], default_scope, toks[1], exc_value=exc_value)
    return ScopedId.decode(text, exc_value=exc_value)

def ports_normalize(ports, exc_value=EXC_VALUE_DEFAULT):
    '''
    Validate a collection of TCP ports and return them as a sorted tuple.
    Ports must be unique ints in 1..65535.
    '''
    if isinstance(ports, (str, bytes)):
        raise exc_value("ports must be a collection of int, not %s" % type(ports).__name__)
    ret = list()
    for port in ports:
        if isinstance(port, bool) or (not isinstance(port, int)):
            raise exc_value("port %r is not an int" % (port,))
        if not PORT_MIN <= port <= PORT_MAX:
            raise exc_value("port %d is out of range %d..%d" % (port, PORT_MIN, PORT_MAX))
        ret.append(port)
    if len(set(ret)) != len(ret):
        raise exc_value("ports %r contain duplicates" % (ret,))
    return tuple(sorted(ret))

class IngressKey():
    '''
    Identity of a security group together with the inbound ports it opens.
    Peers compare on region, scope, id, and ports, so differently-scoped
    groups that share an id do not collide. Compared against a ScopedId
    or RegionAndId, only region and id matter.
    '''
    __slots__ = ('_scoped_id', '_inbound_ports')

    def __init__(self, region, scope, id_, inbound_ports, exc_value=EXC_VALUE_DEFAULT):
        self._scoped_id = ScopedId(region, scope, id_, exc_value=exc_value)
        self._inbound_ports = ports_normalize(inbound_ports, exc_value=exc_value)

    @classmethod
    def from_scoped_id(cls, scoped_id, inbound_ports, exc_value=EXC_VALUE_DEFAULT):
        return cls(scoped_id.region, scoped_id.scope, scoped_id.id, inbound_ports, exc_value=exc_value)

    @property
    def region(self):
        return self._scoped_id.region

    @property
    def scope(self):
        return self._scoped_id.scope

    @property
    def id(self):
        return self._scoped_id.id

    @property
    def inbound_ports(self):
        return self._inbound_ports

    def scoped_id(self):
        return self._scoped_id

    def narrow(self):
        return self._scoped_id.narrow()

    def encode(self):
        return self._scoped_id.encode()

    def __str__(self):
        return "%s:%s" % (self.encode(), ','.join(str(x) for x in self._inbound_ports))

    def __repr__(self):
        return "%s(%r, %r, %r, %r)" % (type(self).__name__, self.region, self.scope, self.id, list(self._inbound_ports))

    def __eq__(self, other):
        if isinstance(other, IngressKey):
            return (self._scoped_id == other.scoped_id()) and (self._inbound_ports == other.inbound_ports)
        if isinstance(other, (ScopedId, RegionAndId)):
            return (self.region == other.region) and (self.id == other.id)
        return NotImplemented

    def __hash__(self):
        return hash((self.region, self.id))
