"""
Makefile variables and the store that holds them.

A variable has a flavor, an origin and a value. The flavor decides how the
value is turned into text when the variable is read:

  simple      the value was expanded once, at assignment time
  recursive   the value is an unexpanded expression, re-expanded on every read
  undefined   the shared fallback for names nobody assigned; reads as ''
  names       a synthetic listing of the names the store knows about

The set of flavors is closed: every operation below dispatches on the flavor
tag rather than on a subclass.
"""
import logging, threading

from pykati import errors
from pykati.expansion import parsemakesyntax

_data_log = logging.getLogger('pykati.data')

ORIGIN_UNDEFINED = 0
ORIGIN_DEFAULT = 1
ORIGIN_ENVIRONMENT = 2
ORIGIN_ENVIRONMENT_OVERRIDE = 3
ORIGIN_FILE = 4
ORIGIN_COMMAND_LINE = 5
ORIGIN_OVERRIDE = 6
ORIGIN_AUTOMATIC = 7

_originnames = {
    ORIGIN_UNDEFINED: 'undefined',
    ORIGIN_DEFAULT: 'default',
    ORIGIN_ENVIRONMENT: 'environment',
    ORIGIN_ENVIRONMENT_OVERRIDE: 'environment override',
    ORIGIN_FILE: 'file',
    ORIGIN_COMMAND_LINE: 'command line',
    ORIGIN_OVERRIDE: 'override',
    ORIGIN_AUTOMATIC: 'automatic',
}

# Weakest first. "make -e" puts the environment above the makefile, so
# environment override sits between file and command line.
_precedence = {
    ORIGIN_UNDEFINED: 0,
    ORIGIN_DEFAULT: 1,
    ORIGIN_ENVIRONMENT: 2,
    ORIGIN_FILE: 3,
    ORIGIN_ENVIRONMENT_OVERRIDE: 4,
    ORIGIN_COMMAND_LINE: 5,
    ORIGIN_OVERRIDE: 6,
    ORIGIN_AUTOMATIC: 7,
}

_envorigins = (ORIGIN_ENVIRONMENT, ORIGIN_ENVIRONMENT_OVERRIDE)

OP_EQ = '='
OP_COLON_EQ = ':='
OP_PLUS_EQ = '+='
OP_QUESTION_EQ = '?='

def strongerorigin(a, b):
    if _precedence[b] > _precedence[a]:
        return b
    return a


class UsageTracker(object):
    """
    Accumulators for the names a run consulted, read once when the stamp is
    written. One tracker is created per run and handed to the store and the
    evaluator; there is no module-level instance.
    """
    __slots__ = ('_lock', 'used_env_vars', 'used_undefined_vars')

    def __init__(self):
        self._lock = threading.Lock()
        self.used_env_vars = set()
        self.used_undefined_vars = set()

    def addenv(self, name):
        with self._lock:
            self.used_env_vars.add(name)

    def addundefined(self, name):
        with self._lock:
            self.used_undefined_vars.add(name)


class Variable(object):
    """
    A single variable binding. Use the simple(), recursive() and names()
    constructors; the undefined flavor has exactly one instance,
    Variable.UNDEFINED.
    """

    __slots__ = ('flavor', 'origin', 'value', 'definition', 'loc', 'op',
                 'readonly', 'deprecated', 'obsolete', 'message',
                 'self_referential', 'allsymbols', '_expansion')

    FLAVOR_SIMPLE = 'simple'
    FLAVOR_RECURSIVE = 'recursive'
    FLAVOR_UNDEFINED = 'undefined'
    FLAVOR_NAMES = 'kati_variable_names'

    UNDEFINED = None

    def __init__(self, flavor, origin, value='', definition=None, loc=None, op=None):
        assert flavor in (self.FLAVOR_SIMPLE, self.FLAVOR_RECURSIVE,
                          self.FLAVOR_UNDEFINED, self.FLAVOR_NAMES)
        assert origin in _originnames
        self.flavor = flavor
        self.origin = origin
        self.value = value
        self.definition = definition
        self.loc = loc
        self.op = op
        self.readonly = False
        self.deprecated = False
        self.obsolete = False
        self.message = ''
        self.self_referential = False
        self.allsymbols = False
        self._expansion = None

    @staticmethod
    def simple(value, origin=ORIGIN_FILE, definition=None, loc=None, op=OP_COLON_EQ):
        return Variable(Variable.FLAVOR_SIMPLE, origin, value, definition, loc, op)

    @staticmethod
    def recursive(value, origin=ORIGIN_FILE, definition=None, loc=None, op=OP_EQ):
        return Variable(Variable.FLAVOR_RECURSIVE, origin, value, definition, loc, op)

    @staticmethod
    def names(name, allsymbols):
        """
        The .VARIABLES (allsymbols=False) and .KATI_SYMBOLS (allsymbols=True)
        listing variables.
        """
        v = Variable(Variable.FLAVOR_NAMES, ORIGIN_DEFAULT, name)
        v.allsymbols = allsymbols
        return v

    def is_defined(self):
        return self.flavor != self.FLAVOR_UNDEFINED

    @property
    def originname(self):
        return _originnames[self.origin]

    def expansion(self):
        """
        The parsed value of a recursive variable. Parsing happens once; the
        result is resolved again on every read.
        """
        assert self.flavor == self.FLAVOR_RECURSIVE
        if self._expansion is None:
            self._expansion = parsemakesyntax(self.value, self.loc)
        return self._expansion

    def is_callable(self, evaluator):
        """
        Whether the value looks like something $(call) should expand rather
        than copy: only recursive values with references in them do.
        """
        if self.flavor == self.FLAVOR_RECURSIVE:
            return not self.expansion().is_static_string
        return False

    def evaluate(self, evaluator, name=None):
        flavor = self.flavor
        if flavor == self.FLAVOR_SIMPLE:
            return self.value
        if flavor == self.FLAVOR_UNDEFINED:
            return ''
        if flavor == self.FLAVOR_NAMES:
            return ' '.join(evaluator.variables.names(self.allsymbols))

        assert flavor == self.FLAVOR_RECURSIVE
        if name is None:
            name = self.value

        active = evaluator.activevariables()
        if id(self) in active:
            self.self_referential = True
            raise errors.DataError("Recursive variable '%s' references itself (eventually)" % (name,),
                                   evaluator.currentloc(self.loc))

        active.add(id(self))
        try:
            return self.expansion().resolvestr(evaluator)
        finally:
            active.discard(id(self))

    def raw_text(self):
        if self.flavor == self.FLAVOR_NAMES:
            return ''
        return self.value

    def debug_string(self):
        if self.flavor == self.FLAVOR_UNDEFINED:
            return '*undefined*'
        if self.flavor == self.FLAVOR_NAMES:
            return '*%s*' % (self.value,)
        return "%s %s %r (%s)" % (self.flavor, self.op or '', self.value, self.originname)

    def setreadonly(self):
        assert self.is_defined()
        self.readonly = True

    def setdeprecated(self, message=''):
        assert self.is_defined()
        self.deprecated = True
        self.message = message

    def setobsolete(self, message=''):
        assert self.is_defined()
        self.obsolete = True
        self.message = message

    def copydiagnostics(self, other):
        self.readonly = other.readonly
        self.deprecated = other.deprecated
        self.obsolete = other.obsolete
        self.message = other.message

    def used(self, evaluator, name):
        """
        Called on every read and write of the variable. Obsolete variables are
        fatal; deprecated ones warn each time they are touched.
        """
        if not self.obsolete and not self.deprecated:
            return

        suffix = self.message and ': %s' % (self.message,) or ''
        loc = evaluator.currentloc(self.loc)
        if self.obsolete:
            raise errors.ObsoleteVariableError(name, suffix, loc)

        _data_log.warning("%s: %s has been deprecated%s.", loc, name, suffix)

    def __repr__(self):
        return "Variable<%s>(%s)" % (self.loc, self.debug_string())

Variable.UNDEFINED = Variable(Variable.FLAVOR_UNDEFINED, ORIGIN_UNDEFINED)


class ScopedVar(object):
    """
    Temporarily bind a name, restoring the previous binding (or its absence)
    when the with-block exits, normally or through an exception.

        with variables.scoped('@', Variable.simple('out/foo.o', ORIGIN_AUTOMATIC)):
            ...
    """
    __slots__ = ('_variables', '_name', '_var', '_orig', '_entered')

    def __init__(self, variables, name, var):
        self._variables = variables
        self._name = name
        self._var = var
        self._orig = None
        self._entered = False

    def __enter__(self):
        assert not self._entered, "ScopedVar is not reentrant"
        m = self._variables._map
        self._orig = m.get(self._name)
        m[self._name] = self._var
        self._variables._symbols.add(self._name)
        self._entered = True
        return self._var

    def __exit__(self, exc_type, exc_value, tb):
        m = self._variables._map
        if self._orig is None:
            m.pop(self._name, None)
        else:
            m[self._name] = self._orig
        self._orig = None
        self._entered = False
        return False


class Variables(object):
    """
    A mapping from variable names to Variable objects. Exactly one binding
    exists per name; unbound names look up as Variable.UNDEFINED.
    """

    __slots__ = ('_map', '_symbols', 'usage')

    def __init__(self, usage=None):
        self._map = {}
        self._symbols = set()
        self.usage = usage

    def readfromenvironment(self, env, definition=None):
        for k, v in env.items():
            self.assign(k, Variable.recursive(v, ORIGIN_ENVIRONMENT, definition))

    def lookup(self, name):
        """
        Get the variable bound to name, or Variable.UNDEFINED. Reading a
        variable imported from the environment records the name as used.
        """
        self._symbols.add(name)
        v = self._map.get(name)
        if v is None:
            return Variable.UNDEFINED

        if v.origin in _envorigins and self.usage is not None:
            self.usage.addenv(name)
        return v

    def peek(self, name):
        """
        Like lookup, but returns None for unbound names and records nothing.
        """
        return self._map.get(name)

    def assign(self, name, var, force=False, strict=True):
        """
        Bind name to var.

        The assignment is dropped when the current binding is read-only, or
        when it has a stronger origin and force is not set. Returns whether
        the store changed. With strict, assigning a read-only variable raises
        ReadOnlyError instead of being dropped.
        """
        assert var.is_defined()
        self._symbols.add(name)

        prev = self._map.get(name)
        if prev is not None:
            if prev.readonly:
                if strict:
                    raise errors.ReadOnlyError(name, var.loc)
                _data_log.warning("%s: not setting readonly variable '%s'", var.loc, name)
                return False

            if not force and _precedence[var.origin] < _precedence[prev.origin]:
                _data_log.info("not setting variable '%s', set by higher-priority source '%s' to value '%s'",
                               name, prev.originname, prev.value)
                return False

        self._map[name] = var
        return True

    def append(self, name, value, origin, evaluator, loc=None):
        """
        Implement NAME += value. Simple variables expand the appended text now;
        recursive ones keep it unexpanded. The result keeps the stronger of
        the two origins.
        """
        prev = self._map.get(name)
        definition = evaluator.currentframe()
        if prev is None:
            var = Variable.recursive(value, origin, definition, loc, OP_PLUS_EQ)
            return self.assign(name, var, force=True)

        if prev.readonly:
            raise errors.ReadOnlyError(name, loc)

        prev.used(evaluator, name)
        if prev.flavor == Variable.FLAVOR_SIMPLE:
            text = evaluator.eval_expression(value, loc)
            flavor = Variable.FLAVOR_SIMPLE
        elif prev.flavor == Variable.FLAVOR_RECURSIVE:
            text = value
            flavor = Variable.FLAVOR_RECURSIVE
        else:
            raise errors.DataError("cannot append to variable '%s'" % (name,), loc)

        if prev.value and text:
            text = prev.value + ' ' + text
        elif prev.value:
            text = prev.value

        var = Variable(flavor, strongerorigin(prev.origin, origin), text,
                       definition, loc, OP_PLUS_EQ)
        var.copydiagnostics(prev)
        return self.assign(name, var, force=True)

    def scoped(self, name, var):
        return ScopedVar(self, name, var)

    def names(self, allsymbols=False):
        if allsymbols:
            return sorted(self._symbols)
        return sorted(k for k, v in self._map.items() if v.is_defined())

    def __contains__(self, item):
        return item in self._map

    def __len__(self):
        return len(self._map)
