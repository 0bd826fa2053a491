"""
Basic type definitions. Do not introduce dependencies to other pykati modules,
or you risk circular dependencies.
"""


class Location(object):
    """
    A location within a makefile.

    Locations are path/line pairs. Recipe lines and variable assignments
    carry one so diagnostics can point back at the makefile.
    """
    __slots__ = ('path', 'line')

    def __init__(self, path, line):
        self.path = path
        self.line = line

    def __eq__(self, other):
        if not isinstance(other, Location):
            return False
        return self.path == other.path and self.line == other.line

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((self.path, self.line))

    def __repr__(self):
        return "Location(%r, %r)" % (self.path, self.line)

    def __str__(self):
        return "%s:%s" % (self.path, self.line)


FRAME_ROOT = 'root'
FRAME_CALL = 'call'
FRAME_COMMAND = 'command'
FRAME_NINJA = 'ninja'


class Frame(object):
    """
    A definition site: the lexical scope a variable was assigned in.

    Every variable assigned while a frame is current holds a reference to it;
    frames never reference the variables defined in them, so plain reference
    counting is enough to keep them alive exactly as long as they are needed.
    """
    __slots__ = ('kind', 'name', 'loc', 'parent')

    def __init__(self, kind, name, loc=None, parent=None):
        self.kind = kind
        self.name = name
        self.loc = loc
        self.parent = parent

    def __repr__(self):
        return "Frame<%s>(%s, %s)" % (self.kind, self.name, self.loc)

    def __str__(self):
        if self.loc is None:
            return "%s %s" % (self.kind, self.name)
        return "%s %s at %s" % (self.kind, self.name, self.loc)
