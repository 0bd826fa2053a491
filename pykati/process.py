"""
Running $(shell) commands during evaluation, and the log of every command
result the evaluation depended on. The log is replayed into the regeneration
stamp: if any recorded command would now produce different output, the build
plan has to be regenerated.
"""
import logging, os, subprocess, sys, threading

_log = logging.getLogger('pykati.process')

OP_SHELL = 0
OP_FIND = 1

def concatdir(chdir, path):
    """
    Join a path reported by a command run in chdir back onto chdir.
    """
    if not chdir or os.path.isabs(path):
        return os.path.normpath(path)
    return os.path.normpath(os.path.join(chdir, path))


class FindCommand(object):
    """
    The parameters and results of a filesystem scan ("find") invocation.
    finddirs are the directories the scan was asked to look at, relative to
    chdir; foundfiles and readdirs are what the scan saw.
    """
    __slots__ = ('chdir', 'finddirs', 'foundfiles', 'readdirs')

    def __init__(self, chdir, finddirs, foundfiles=(), readdirs=()):
        self.chdir = chdir
        self.finddirs = list(finddirs)
        self.foundfiles = list(foundfiles)
        self.readdirs = list(readdirs)

    def missingdirs(self):
        """
        The scanned directories which do not exist. Creating one later would
        change the scan result, so they are stamped as well.
        """
        r = []
        for d in self.finddirs:
            d = concatdir(self.chdir, d)
            if not os.path.exists(d):
                r.append(d)
        return r


class CommandResult(object):
    __slots__ = ('op', 'shell', 'shellflag', 'cmd', 'result', 'loc', 'find')

    def __init__(self, op, shell, shellflag, cmd, result, loc, find=None):
        assert op != OP_FIND or find is not None, "find results need a FindCommand"
        self.op = op
        self.shell = shell
        self.shellflag = shellflag
        self.cmd = cmd
        self.result = result
        self.loc = loc
        self.find = find

    def __repr__(self):
        return "CommandResult<%s>(%i, %r)" % (self.loc, self.op, self.cmd)


class CommandResults(object):
    """
    The ordered, append-only log of command results for one run.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._results = []

    def add(self, cr):
        with self._lock:
            self._results.append(cr)

    def __iter__(self):
        with self._lock:
            return iter(list(self._results))

    def __len__(self):
        return len(self._results)


def runshell(shell, shellflag, cline, cwd, env, loc):
    """
    Run cline through the shell the way $(shell) does: the output has
    its trailing newline removed and remaining newlines turned into spaces.
    """
    argv = [shell] + shellflag.split() + [cline]

    _log.debug("%s: running command '%s'", loc, cline)
    try:
        p = subprocess.Popen(argv, env=env, shell=False, stdout=subprocess.PIPE,
                             cwd=cwd)
    except OSError as e:
        print("Error executing command %s" % argv[0], e, file=sys.stderr)
        return ''

    stdout, stderr = p.communicate()
    stdout = stdout.decode('utf-8', 'replace')
    stdout = stdout.replace('\r\n', '\n')
    if stdout.endswith('\n'):
        stdout = stdout[:-1]
    return stdout.replace('\n', ' ')
