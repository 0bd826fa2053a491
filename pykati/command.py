"""
Evaluation of a target's recipe into the list of shell commands to run.
"""
import contextlib

from pykati.basic import FRAME_COMMAND
from pykati.variables import Variable, ORIGIN_AUTOMATIC


class Command(object):
    """
    One shell command of a recipe, with its modifiers already stripped.
    echo is False for @-prefixed commands, ignore_error is True for
    -prefixed ones.
    """
    __slots__ = ('output', 'cmd', 'echo', 'ignore_error', 'loc')

    def __init__(self, output, cmd, echo=True, ignore_error=False, loc=None):
        self.output = output
        self.cmd = cmd
        self.echo = echo
        self.ignore_error = ignore_error
        self.loc = loc

    def __repr__(self):
        return "Command<%s>(%r, echo=%r, ignore_error=%r)" % (self.loc, self.cmd, self.echo, self.ignore_error)


def withoutdups(it):
    r = set()
    for i in it:
        if not i in r:
            r.add(i)
            yield i

def dirpart(p):
    d, s, f = p.rpartition('/')
    if d == '':
        return '.'

    return d

def filepart(p):
    d, s, f = p.rpartition('/')
    return f

def automaticvariables(node):
    """
    Yield (name, Variable) for $@, $<, $^, $+, $|, $?, $* and their D/F
    forms. Every prerequisite counts as newer: the build executor, not this
    evaluation, decides what is out of date.
    """
    inputs = node.inputs()

    def setautomatic(name, plist):
        yield name, Variable.simple(' '.join(plist), ORIGIN_AUTOMATIC)
        yield name + 'D', Variable.simple(' '.join((dirpart(p) for p in plist)), ORIGIN_AUTOMATIC)
        yield name + 'F', Variable.simple(' '.join((filepart(p) for p in plist)), ORIGIN_AUTOMATIC)

    for nv in setautomatic('@', [node.output]):
        yield nv
    for nv in setautomatic('<', inputs[:1]):
        yield nv
    for nv in setautomatic('^', list(withoutdups(inputs))):
        yield nv
    for nv in setautomatic('+', inputs):
        yield nv
    for nv in setautomatic('?', list(withoutdups(inputs))):
        yield nv
    for nv in setautomatic('|', list(withoutdups(node.orderonlyinputs()))):
        yield nv
    if node.stem is not None:
        for nv in setautomatic('*', [node.stem]):
            yield nv

def splitcommand(command):
    """
    Using the esoteric rules, split command lines by unescaped newlines.
    """
    start = 0
    i = 0
    while i < len(command):
        c = command[i]
        if c == '\\':
            i += 1
        elif c == '\n':
            yield command[start:i]
            i += 1
            start = i
            continue

        i += 1

    if i > start:
        yield command[start:i]

def findmodifiers(command):
    """
    Find any of +-@ prefixed on the command.
    @returns (command, isHidden, isRecursive, ignoreErrors)
    """

    realcommand = command.lstrip(' \t\n@+-')
    modset = set(command[:len(command) - len(realcommand)])
    return realcommand, '@' in modset, '+' in modset, '-' in modset


class CommandEvaluator(object):
    """
    Expands recipes with the target's own variables in scope.
    """
    def __init__(self, evaluator):
        self.evaluator = evaluator

    def eval(self, node):
        ev = self.evaluator
        commands = []
        with contextlib.ExitStack() as stack:
            stack.enter_context(ev.enter(FRAME_COMMAND, node.output, node.loc))
            for name, var in node.rule_vars:
                stack.enter_context(ev.variables.scoped(name, var))
            for name, var in automaticvariables(node):
                stack.enter_context(ev.variables.scoped(name, var))

            wasevaluating = ev.evaluating_command
            ev.evaluating_command = True
            try:
                for line in node.cmds:
                    cstring = ev.eval_expression(line.text, line.loc)
                    for cline in splitcommand(cstring):
                        cline, isHidden, isRecursive, ignoreErrors = findmodifiers(cline)
                        if not cline.strip():
                            continue
                        commands.append(Command(node.output, cline, echo=not isHidden,
                                                ignore_error=ignoreErrors, loc=line.loc))
            finally:
                ev.evaluating_command = wasevaluating

        return commands
