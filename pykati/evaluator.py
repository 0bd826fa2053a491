"""
The evaluation context: the variable store plus everything an expansion
can consult while it is being resolved (environment, shell, glob cache,
command log), and the run-wide records the regeneration stamp is built from.
"""
import logging, os, threading

from pykati import process
from pykati.basic import Frame, FRAME_ROOT
from pykati.expansion import parsemakesyntax
from pykati.globcache import GlobCache
from pykati.variables import (Variable, Variables, UsageTracker,
                              ORIGIN_DEFAULT, ORIGIN_FILE,
                              OP_EQ, OP_COLON_EQ, OP_PLUS_EQ, OP_QUESTION_EQ)

_data_log = logging.getLogger('pykati.data')


class ScopedFrame(object):
    """
    Push a definition frame for the duration of a with-block.
    """
    __slots__ = ('_evaluator', 'frame')

    def __init__(self, evaluator, frame):
        self._evaluator = evaluator
        self.frame = frame

    def __enter__(self):
        self._evaluator._framestack().append(self.frame)
        return self.frame

    def __exit__(self, exc_type, exc_value, tb):
        popped = self._evaluator._framestack().pop()
        assert popped is self.frame
        return False


class Evaluator(object):
    def __init__(self, env=None, workdir=None, usage=None):
        if env is None:
            env = os.environ
        self.env = dict(env)

        if usage is None:
            usage = UsageTracker()
        self.usage = usage

        if workdir is None:
            workdir = os.getcwd()
        self.workdir = os.path.realpath(workdir)

        self.rootframe = Frame(FRAME_ROOT, '*root*')
        self._local = threading.local()

        self.variables = Variables(usage)
        self.globcache = GlobCache(self.workdir)
        self.commandresults = process.CommandResults()

        # every makefile read, whether or not it existed
        self.makefiles = []
        # name -> True for exported, False for unexported
        self.exports = {}
        self.avoid_io = False

        self.variables.readfromenvironment(self.env, self.rootframe)

        # make never takes SHELL from the environment
        self.variables.assign('SHELL', Variable.simple('/bin/sh', ORIGIN_DEFAULT, self.rootframe), force=True)
        self.variables.assign('.SHELLFLAGS', Variable.simple('-c', ORIGIN_DEFAULT, self.rootframe))
        self.variables.assign('CURDIR', Variable.simple(self.workdir, ORIGIN_DEFAULT, self.rootframe))
        self.variables.assign('.VARIABLES', Variable.names('.VARIABLES', False))
        self.variables.assign('.KATI_SYMBOLS', Variable.names('.KATI_SYMBOLS', True))

    def _framestack(self):
        stack = getattr(self._local, 'frames', None)
        if stack is None:
            stack = self._local.frames = [self.rootframe]
        return stack

    def activevariables(self):
        """
        The recursive variables being expanded on this thread. Used to catch
        variables whose value refers back to themselves.
        """
        active = getattr(self._local, 'active', None)
        if active is None:
            active = self._local.active = set()
        return active

    @property
    def evaluating_command(self):
        return getattr(self._local, 'evaluating_command', False)

    @evaluating_command.setter
    def evaluating_command(self, value):
        self._local.evaluating_command = value

    def currentframe(self):
        return self._framestack()[-1]

    def currentloc(self, default=None):
        for f in reversed(self._framestack()):
            if f.loc is not None:
                return f.loc
        return default

    def enter(self, kind, name, loc=None):
        return ScopedFrame(self, Frame(kind, name, loc, self.currentframe()))

    def addmakefile(self, path):
        if path not in self.makefiles:
            self.makefiles.append(path)

    def export(self, name, exported=True):
        self.exports[name] = exported

    def getenv(self, name):
        return self.env.get(name, '')

    def lookup_variable(self, name):
        v = self.variables.lookup(name)
        v.used(self, name)
        if not v.is_defined():
            self.usage.addundefined(name)
        return v

    def eval_variable(self, name, loc=None):
        v = self.lookup_variable(name)
        if not v.is_defined():
            _data_log.debug("%s: variable '%s' was not set", loc, name)
            return ''
        return v.evaluate(self, name)

    def eval_expression(self, text, loc=None):
        return parsemakesyntax(text, loc).resolvestr(self)

    def assign(self, name, op, text, origin=ORIGIN_FILE, loc=None, force=False):
        """
        Execute a variable assignment statement NAME <op> text.
        Returns whether the store changed.
        """
        if op == OP_PLUS_EQ:
            return self.variables.append(name, text, origin, self, loc)

        prev = self.variables.peek(name)
        if prev is not None:
            prev.used(self, name)

        definition = self.currentframe()
        if op == OP_QUESTION_EQ:
            if prev is not None and prev.is_defined():
                return False
            var = Variable.recursive(text, origin, definition, loc, OP_QUESTION_EQ)
        elif op == OP_EQ:
            var = Variable.recursive(text, origin, definition, loc, OP_EQ)
        else:
            assert op == OP_COLON_EQ, "unknown assignment operator %r" % (op,)
            var = Variable.simple(self.eval_expression(text, loc), origin, definition, loc, OP_COLON_EQ)

        return self.variables.assign(name, var, force=force)

    @property
    def shell(self):
        return self.eval_variable('SHELL')

    @property
    def shellflag(self):
        return self.eval_variable('.SHELLFLAGS')

    def runshell(self, cline, loc):
        shell = self.shell
        shellflag = self.shellflag
        result = process.runshell(shell, shellflag, cline, self.workdir, self.env, loc)
        self.commandresults.add(process.CommandResult(process.OP_SHELL, shell, shellflag,
                                                      cline, result, loc))
        return result
