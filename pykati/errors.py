"""
Exceptions raised while evaluating variables and emitting the build plan.
"""


class MakeError(Exception):
    def __init__(self, message, loc=None):
        Exception.__init__(self, message)
        self.msg = message
        self.loc = loc

    def __str__(self):
        locstr = ''
        if self.loc is not None:
            locstr = "%s: " % (self.loc,)

        return "%s%s" % (locstr, self.msg)


class DataError(MakeError):
    pass


class ReadOnlyError(DataError):
    """
    An assignment to a variable marked read-only.
    """
    def __init__(self, name, loc=None):
        DataError.__init__(self, "cannot assign to readonly variable: %s" % (name,), loc)
        self.name = name


class ObsoleteVariableError(DataError):
    """
    A variable marked obsolete was read or written.
    """
    def __init__(self, name, message, loc=None):
        DataError.__init__(self, "%s is obsolete%s." % (name, message), loc)
        self.name = name


class NoDefaultTargetError(MakeError):
    pass
