"""
The regeneration stamp.

The stamp lists every outside fact the generated build plan depends on: the
makefiles read, environment variables consulted, variables read while
undefined, glob results and command outputs. A later run can check these
facts and skip regenerating the plan when none changed.

Layout, all integers little-endian int32, strings an int32 byte length then
UTF-8 bytes. Undecodable bytes from the environment or file names were
turned into surrogates by Python and are written back as the original bytes:

    float64  start time
    int32 n, n strings                  files: the generator program, then makefiles
    int32 n, n strings                  variables read while undefined
    int32 n, n (name, value) strings    environment variables
    int32 n, n globs                    pattern string, int32 m, m file strings
    int32 n, n command results          int32 op, shell, shellflag, cmd, result,
                                        filename, int32 line; find results add
                                        missing dirs, found files, read dirs,
                                        each as int32 m, m strings
    string                              original command line arguments
"""
import logging, os, struct

from pykati import process
from pykati.basic import Location

_log = logging.getLogger('pykati.stamp')

_int = struct.Struct('<i')
_double = struct.Struct('<d')


class StampFormatError(Exception):
    pass


class StampedCommand(object):
    """
    A command result as read back from a stamp.
    """
    __slots__ = ('op', 'shell', 'shellflag', 'cmd', 'result', 'loc',
                 'missingdirs', 'foundfiles', 'readdirs')

    def __init__(self, op, shell, shellflag, cmd, result, loc,
                 missingdirs=(), foundfiles=(), readdirs=()):
        self.op = op
        self.shell = shell
        self.shellflag = shellflag
        self.cmd = cmd
        self.result = result
        self.loc = loc
        self.missingdirs = list(missingdirs)
        self.foundfiles = list(foundfiles)
        self.readdirs = list(readdirs)

    def __repr__(self):
        return "StampedCommand<%s>(%i, %r)" % (self.loc, self.op, self.cmd)


class Stamp(object):
    def __init__(self, start_time, program, makefiles=(), undefined_vars=(),
                 used_envs=(), globs=(), command_results=(), orig_args=''):
        self.start_time = start_time
        self.program = program
        self.makefiles = list(makefiles)
        self.undefined_vars = list(undefined_vars)
        self.used_envs = list(used_envs)
        self.globs = list(globs)
        self.command_results = list(command_results)
        self.orig_args = orig_args

    @staticmethod
    def collect(evaluator, program, orig_args, start_time, used_envs):
        """
        Gather the stamp for a finished run. used_envs is the list of
        (name, value) pairs the generated plan recorded.
        """
        return Stamp(start_time, program,
                     makefiles=evaluator.makefiles,
                     undefined_vars=sorted(evaluator.usage.used_undefined_vars),
                     used_envs=used_envs,
                     globs=evaluator.globcache.items(),
                     command_results=list(evaluator.commandresults),
                     orig_args=orig_args)


def dumpint(fd, i):
    fd.write(_int.pack(i))

def dumpstring(fd, s):
    b = s.encode('utf-8', 'surrogateescape')
    dumpint(fd, len(b))
    fd.write(b)

def dumpstrings(fd, strings):
    strings = list(strings)
    dumpint(fd, len(strings))
    for s in strings:
        dumpstring(fd, s)


class StampWriter(object):
    """
    Writes a stamp to a temporary file and renames it over path, so a stamp
    read under path is always complete.
    """
    def __init__(self, path, temppath=None):
        self.path = path
        if temppath is None:
            temppath = path + '.tmp'
        self.temppath = temppath

    def write(self, stamp):
        try:
            with open(self.temppath, 'wb') as fd:
                self.dump(fd, stamp)
        except BaseException:
            if os.path.exists(self.temppath):
                os.unlink(self.temppath)
            raise

        os.replace(self.temppath, self.path)
        _log.debug("wrote stamp %s", self.path)

    def dump(self, fd, stamp):
        fd.write(_double.pack(stamp.start_time))

        dumpstrings(fd, [stamp.program] + stamp.makefiles)
        dumpstrings(fd, stamp.undefined_vars)

        dumpint(fd, len(stamp.used_envs))
        for name, value in stamp.used_envs:
            dumpstring(fd, name)
            dumpstring(fd, value)

        dumpint(fd, len(stamp.globs))
        for pattern, files in stamp.globs:
            dumpstring(fd, pattern)
            dumpstrings(fd, files)

        dumpint(fd, len(stamp.command_results))
        for cr in stamp.command_results:
            self.dumpcommand(fd, cr)

        dumpstring(fd, stamp.orig_args)

    def dumpcommand(self, fd, cr):
        dumpint(fd, cr.op)
        dumpstring(fd, cr.shell)
        dumpstring(fd, cr.shellflag)
        dumpstring(fd, cr.cmd)
        dumpstring(fd, cr.result)
        if cr.loc is None:
            dumpstring(fd, '')
            dumpint(fd, 0)
        else:
            dumpstring(fd, cr.loc.path or '')
            dumpint(fd, cr.loc.line)

        if cr.op == process.OP_FIND:
            find = cr.find
            dumpstrings(fd, find.missingdirs())
            dumpstrings(fd, (process.concatdir(find.chdir, f) for f in find.foundfiles))
            dumpstrings(fd, (process.concatdir(find.chdir, d) for d in find.readdirs))


class StampReader(object):
    """
    Reads back what StampWriter wrote.
    """
    def __init__(self, data):
        self.data = data
        self.offset = 0

    @staticmethod
    def readfile(path):
        with open(path, 'rb') as fd:
            return StampReader(fd.read()).read()

    def _take(self, n):
        end = self.offset + n
        if end > len(self.data):
            raise StampFormatError("truncated stamp at offset %i" % (self.offset,))
        b = self.data[self.offset:end]
        self.offset = end
        return b

    def readint(self):
        return _int.unpack(self._take(_int.size))[0]

    def readstring(self):
        n = self.readint()
        if n < 0:
            raise StampFormatError("negative string length at offset %i" % (self.offset,))
        return self._take(n).decode('utf-8', 'surrogateescape')

    def readstrings(self):
        return [self.readstring() for i in range(self.readint())]

    def read(self):
        start_time = _double.unpack(self._take(_double.size))[0]

        files = self.readstrings()
        if not files:
            raise StampFormatError("stamp lists no generator program")
        undefined_vars = self.readstrings()

        used_envs = []
        for i in range(self.readint()):
            name = self.readstring()
            used_envs.append((name, self.readstring()))

        globs = []
        for i in range(self.readint()):
            pattern = self.readstring()
            globs.append((pattern, self.readstrings()))

        command_results = [self.readcommand() for i in range(self.readint())]
        orig_args = self.readstring()

        if self.offset != len(self.data):
            raise StampFormatError("%i trailing bytes in stamp" % (len(self.data) - self.offset,))

        return Stamp(start_time, files[0], files[1:], undefined_vars, used_envs,
                     globs, command_results, orig_args)

    def readcommand(self):
        op = self.readint()
        shell = self.readstring()
        shellflag = self.readstring()
        cmd = self.readstring()
        result = self.readstring()
        filename = self.readstring()
        line = self.readint()
        loc = None
        if filename:
            loc = Location(filename, line)

        cr = StampedCommand(op, shell, shellflag, cmd, result, loc)
        if op == process.OP_FIND:
            cr.missingdirs = self.readstrings()
            cr.foundfiles = self.readstrings()
            cr.readdirs = self.readstrings()
        return cr
