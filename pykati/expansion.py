"""
Parsed variable values.

An expansion is the parsed form of a string which may contain variable
references and function calls. Only the parts of the make language that
variable evaluation needs live here: references ($(X), ${X}, $X, $$),
substitution references ($(X:a=b)) and the functions whose results the
regeneration stamp has to track. Statement parsing is not done here.

Expansions are resolved against an evaluator (see pykati.evaluator), which
provides variable lookup and the shell and glob collaborators.
"""
import logging, re
from io import StringIO

from pykati import errors

_data_log = logging.getLogger('pykati.data')


class BaseExpansion(object):
    """Base class for expansions."""

    @property
    def is_static_string(self):
        raise Exception('Must be implemented in child class.')


class StringExpansion(BaseExpansion):
    """An Expansion representing a static string."""

    __slots__ = ('loc', 's',)
    simple = True

    def __init__(self, s, loc):
        assert isinstance(s, str)
        self.s = s
        self.loc = loc

    def resolve(self, evaluator, fd):
        fd.write(self.s)

    def resolvestr(self, evaluator):
        return self.s

    def resolvesplit(self, evaluator):
        return self.s.split()

    @property
    def is_static_string(self):
        return True

    def __repr__(self):
        return "Exp<%s>(%r)" % (self.loc, self.s)

    def __eq__(self, other):
        return self.s == other

    def __ne__(self, other):
        return not self.__eq__(other)


class Expansion(BaseExpansion, list):
    """
    An ordered list of (element, isfunc) tuples, where element is either a
    literal string or a Function instance.
    """

    __slots__ = ('loc',)
    simple = False

    def __init__(self, loc=None):
        self.loc = loc

    def appendstr(self, s):
        assert isinstance(s, str)
        if s == '':
            return

        self.append((s, False))

    def appendfunc(self, func):
        assert isinstance(func, Function)
        self.append((func, True))

    def concat(self, o):
        """Concatenate the other expansion on to this one."""
        if o.simple:
            self.appendstr(o.s)
        else:
            self.extend(o)

    def finish(self):
        # Merge any adjacent literal strings:
        strings = []
        elements = []
        for (e, isfunc) in self:
            if isfunc:
                if strings:
                    s = ''.join(strings)
                    if s:
                        elements.append((s, False))
                    strings = []
                elements.append((e, True))
            else:
                strings.append(e)

        if not elements:
            # This can only happen if there were no function elements.
            return StringExpansion(''.join(strings), self.loc)

        if strings:
            s = ''.join(strings)
            if s:
                elements.append((s, False))

        if len(elements) < len(self):
            self[:] = elements

        return self

    def resolve(self, evaluator, fd):
        for e, isfunc in self:
            if isfunc:
                e.resolve(evaluator, fd)
            else:
                fd.write(e)

    def resolvestr(self, evaluator):
        fd = StringIO()
        self.resolve(evaluator, fd)
        return fd.getvalue()

    def resolvesplit(self, evaluator):
        return self.resolvestr(evaluator).split()

    @property
    def is_static_string(self):
        for e, is_func in self:
            if is_func:
                return False

        return True

    def __repr__(self):
        return "<Expansion with elements: %r>" % ([e for e, isfunc in self],)


class Function(object):
    """
    An object that represents a function call. Subclasses set

    name = function name as written in the makefile
    minargs = minimum # of arguments
    maxargs = maximum # of arguments (0 means unlimited)

    and implement resolve(self, evaluator, fd), which calls fd.write() with
    strings.
    """

    __slots__ = ('_arguments', 'loc')

    def __init__(self, loc):
        self._arguments = []
        self.loc = loc
        assert self.minargs > 0

    def __getitem__(self, key):
        return self._arguments[key]

    def setup(self):
        argc = len(self._arguments)

        if argc < self.minargs:
            raise errors.DataError("Not enough arguments to function %s, requires %s" % (self.name, self.minargs), self.loc)

        assert self.maxargs == 0 or argc <= self.maxargs, "Parser screwed up, gave us too many args"

    def append(self, arg):
        assert isinstance(arg, (Expansion, StringExpansion))
        self._arguments.append(arg)

    def __len__(self):
        return len(self._arguments)

    def __repr__(self):
        return "%s<%s>(%r)" % (
            self.__class__.__name__, self.loc,
            ','.join([repr(a) for a in self._arguments]),
            )


class VariableRef(Function):
    __slots__ = ('vname', 'loc')

    def __init__(self, loc, vname):
        self.loc = loc
        assert isinstance(vname, (Expansion, StringExpansion))
        self.vname = vname

    def setup(self):
        assert False, "Shouldn't get here"

    def resolve(self, evaluator, fd):
        vname = self.vname.resolvestr(evaluator)
        fd.write(evaluator.eval_variable(vname, self.loc))

    def __repr__(self):
        return "VariableRef<%s>(%r)" % (self.loc, self.vname)


def _patsubst(pfrom, pto, word):
    i = pfrom.find('%')
    if i == -1:
        if word == pfrom:
            return pto
        return word

    prefix, suffix = pfrom[:i], pfrom[i+1:]
    if len(word) < len(prefix) + len(suffix) or not word.startswith(prefix) or not word.endswith(suffix):
        return word

    stem = word[len(prefix):len(word) - len(suffix)]
    return pto.replace('%', stem, 1)

class SubstitutionRef(Function):
    """$(VARNAME:.c=.o) and $(VARNAME:%.c=%.o)"""

    __slots__ = ('loc', 'vname', 'substfrom', 'substto')

    def __init__(self, loc, varname, substfrom, substto):
        self.loc = loc
        self.vname = varname
        self.substfrom = substfrom
        self.substto = substto

    def setup(self):
        assert False, "Shouldn't get here"

    def resolve(self, evaluator, fd):
        vname = self.vname.resolvestr(evaluator)
        substfrom = self.substfrom.resolvestr(evaluator)
        substto = self.substto.resolvestr(evaluator)

        if '%' not in substfrom:
            substfrom = '%' + substfrom
            substto = '%' + substto

        value = evaluator.eval_variable(vname, self.loc)
        fd.write(' '.join([_patsubst(substfrom, substto, word)
                           for word in value.split()]))

    def __repr__(self):
        return "SubstitutionRef<%s>(%r:%r=%r)" % (
            self.loc, self.vname, self.substfrom, self.substto,)

class ValueFunction(Function):
    name = 'value'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        varname = self._arguments[0].resolvestr(evaluator)
        fd.write(evaluator.lookup_variable(varname).raw_text())

class OriginFunction(Function):
    name = 'origin'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        vname = self._arguments[0].resolvestr(evaluator)
        fd.write(evaluator.variables.lookup(vname).originname)

class FlavorFunction(Function):
    name = 'flavor'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        varname = self._arguments[0].resolvestr(evaluator)
        fd.write(evaluator.variables.lookup(varname).flavor)

class WildcardFunction(Function):
    name = 'wildcard'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        patterns = self._arguments[0].resolvesplit(evaluator)

        fd.write(' '.join([x for p in patterns
                           for x in evaluator.globcache.glob(p)]))

class ShellFunction(Function):
    name = 'shell'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        cline = self._arguments[0].resolvestr(evaluator)
        if evaluator.avoid_io and evaluator.evaluating_command:
            # Leave it to the shell running the recipe.
            fd.write('$(%s)' % (cline,))
            return

        fd.write(evaluator.runshell(cline, self.loc))

class ErrorFunction(Function):
    name = 'error'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        v = self._arguments[0].resolvestr(evaluator)
        raise errors.DataError(v, self.loc)

class WarningFunction(Function):
    name = 'warning'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        v = self._arguments[0].resolvestr(evaluator)
        _data_log.warning("%s: %s", self.loc, v)

class InfoFunction(Function):
    name = 'info'
    minargs = 1
    maxargs = 1

    __slots__ = Function.__slots__

    def resolve(self, evaluator, fd):
        v = self._arguments[0].resolvestr(evaluator)
        print(v)

functionmap = {
    'value': ValueFunction,
    'origin': OriginFunction,
    'flavor': FlavorFunction,
    'wildcard': WildcardFunction,
    'shell': ShellFunction,
    'error': ErrorFunction,
    'warning': WarningFunction,
    'info': InfoFunction,
}


_alltokens = re.compile(r'''\$(?:\Z|[\(\{](?:%s)\s+|.) | # dollar sign followed by EOF, a function keyword with whitespace, or any character
                            [(){},:=]''' % '|'.join(functionmap.keys()), re.VERBOSE | re.DOTALL)

_PARSESTATE_TOPLEVEL = 0    # at the top level
_PARSESTATE_FUNCTION = 1    # expanding a function call
_PARSESTATE_VARNAME = 2     # expanding a variable expansion.
_PARSESTATE_SUBSTFROM = 3   # expanding a variable expansion substitution "from" value
_PARSESTATE_SUBSTTO = 4     # expanding a variable expansion substitution "to" value
_PARSESTATE_PARENMATCH = 5  # inside nested parentheses/braces that must be matched

class ParseStackFrame(object):
    __slots__ = ('parsestate', 'parent', 'expansion', 'tokenlist', 'openbrace', 'closebrace', 'function', 'loc', 'varname', 'substfrom')

    def __init__(self, parsestate, parent, expansion, tokenlist, openbrace, closebrace, function=None, loc=None):
        self.parsestate = parsestate
        self.parent = parent
        self.expansion = expansion
        self.tokenlist = tokenlist
        self.openbrace = openbrace
        self.closebrace = closebrace
        self.function = function
        self.loc = loc

_matchingbrace = {
    '(': ')',
    '{': '}',
    }

def parsemakesyntax(s, loc):
    """
    Parse the string s, a variable value or recipe line without line
    continuations, into an expansion.

    @return a StringExpansion when s contains no references, else an Expansion
    """
    stacktop = ParseStackFrame(_PARSESTATE_TOPLEVEL, None, Expansion(loc=loc),
                               tokenlist=('$',),
                               openbrace=None, closebrace=None)

    offset = 0
    for m in _alltokens.finditer(s):
        tokenoffset, end = m.span(0)
        token = m.group(0)
        if not (token in stacktop.tokenlist or (token[0] == '$' and '$' in stacktop.tokenlist)):
            continue

        stacktop.expansion.appendstr(s[offset:tokenoffset])
        offset = end

        parsestate = stacktop.parsestate

        if token[0] == '$':
            if len(token) == 1:
                # an unterminated $ expands to nothing
                break

            c = token[1]
            if c == '$':
                assert len(token) == 2
                stacktop.expansion.appendstr('$')
            elif c in ('(', '{'):
                closebrace = _matchingbrace[c]

                if len(token) > 2:
                    fname = token[2:].rstrip()
                    fn = functionmap[fname](loc)
                    e = Expansion()
                    if len(fn) + 1 == fn.maxargs:
                        tokenlist = (c, closebrace, '$')
                    else:
                        tokenlist = (',', c, closebrace, '$')

                    stacktop = ParseStackFrame(_PARSESTATE_FUNCTION, stacktop,
                                               e, tokenlist, function=fn,
                                               openbrace=c, closebrace=closebrace)
                else:
                    e = Expansion()
                    tokenlist = (':', c, closebrace, '$')
                    stacktop = ParseStackFrame(_PARSESTATE_VARNAME, stacktop,
                                               e, tokenlist,
                                               openbrace=c, closebrace=closebrace, loc=loc)
            else:
                assert len(token) == 2
                stacktop.expansion.appendfunc(VariableRef(loc, StringExpansion(c, loc)))
        elif token in ('(', '{'):
            assert token == stacktop.openbrace

            stacktop.expansion.appendstr(token)
            stacktop = ParseStackFrame(_PARSESTATE_PARENMATCH, stacktop,
                                       stacktop.expansion,
                                       (token, stacktop.closebrace, '$'),
                                       openbrace=token, closebrace=stacktop.closebrace, loc=loc)
        elif parsestate == _PARSESTATE_PARENMATCH:
            assert token == stacktop.closebrace
            stacktop.expansion.appendstr(token)
            stacktop = stacktop.parent
        elif parsestate == _PARSESTATE_FUNCTION:
            if token == ',':
                stacktop.function.append(stacktop.expansion.finish())

                stacktop.expansion = Expansion()
                if len(stacktop.function) + 1 == stacktop.function.maxargs:
                    stacktop.tokenlist = (stacktop.openbrace, stacktop.closebrace, '$')
            elif token in (')', '}'):
                fn = stacktop.function
                fn.append(stacktop.expansion.finish())
                fn.setup()

                stacktop = stacktop.parent
                stacktop.expansion.appendfunc(fn)
            else:
                assert False, "Not reached, _PARSESTATE_FUNCTION"
        elif parsestate == _PARSESTATE_VARNAME:
            if token == ':':
                stacktop.varname = stacktop.expansion
                stacktop.parsestate = _PARSESTATE_SUBSTFROM
                stacktop.expansion = Expansion()
                stacktop.tokenlist = ('=', stacktop.openbrace, stacktop.closebrace, '$')
            elif token in (')', '}'):
                fn = VariableRef(stacktop.loc, stacktop.expansion.finish())
                stacktop = stacktop.parent
                stacktop.expansion.appendfunc(fn)
            else:
                assert False, "Not reached, _PARSESTATE_VARNAME"
        elif parsestate == _PARSESTATE_SUBSTFROM:
            if token == '=':
                stacktop.substfrom = stacktop.expansion
                stacktop.parsestate = _PARSESTATE_SUBSTTO
                stacktop.expansion = Expansion()
                stacktop.tokenlist = (stacktop.openbrace, stacktop.closebrace, '$')
            elif token in (')', '}'):
                # $(VARNAME:.ee) is probably a mistake, but make parses it as a
                # variable named "VARNAME:.ee".
                _data_log.warning("%s: Variable reference looks like substitution without =", stacktop.loc)
                stacktop.varname.appendstr(':')
                stacktop.varname.concat(stacktop.expansion)
                fn = VariableRef(stacktop.loc, stacktop.varname.finish())
                stacktop = stacktop.parent
                stacktop.expansion.appendfunc(fn)
            else:
                assert False, "Not reached, _PARSESTATE_SUBSTFROM"
        elif parsestate == _PARSESTATE_SUBSTTO:
            assert token in (')', '}'), "Not reached, _PARSESTATE_SUBSTTO"

            fn = SubstitutionRef(stacktop.loc, stacktop.varname.finish(),
                                 stacktop.substfrom.finish(), stacktop.expansion.finish())
            stacktop = stacktop.parent
            stacktop.expansion.appendfunc(fn)
        else:
            assert False, "Unexpected parse state %s" % stacktop.parsestate
    else:
        stacktop.expansion.appendstr(s[offset:])

    if stacktop.parent is not None:
        raise errors.DataError("Unterminated variable reference", loc)

    assert stacktop.parsestate == _PARSESTATE_TOPLEVEL

    return stacktop.expansion.finish()
