"""
Generation of the Ninja build plan from an evaluated makefile.

NinjaGenerator walks the resolved dependency graph once, evaluates the
recipe of every target that has one, and writes:

  build.ninja   a rule and a build statement per target
  env.sh        the exported and unexported variables
  ninja.sh      a wrapper sourcing env.sh and running ninja on build.ninja
  .pykati_stamp the regeneration stamp (see pykati.stamp)

File names get the configured suffix and live in the configured directory
(see pykati.flags.Flags).
"""
import logging, os, re, sys, threading, time
from concurrent.futures import ThreadPoolExecutor
from io import StringIO

import pykati
from pykati import errors
from pykati.basic import FRAME_NINJA
from pykati.command import CommandEvaluator
from pykati.stamp import Stamp, StampWriter
from pykati.translate import (escape_ninja, escape_shell, gen_shell_script,
                              get_depfile_from_command)

_log = logging.getLogger('pykati.ninja')

ALWAYS_BUILD = '_pykati_always_build_'

# Linux accepts command lines of about 130kB, macOS about 250kB.
COMMAND_LINE_LIMIT = 100 * 1000

_specialtarget = re.compile(r'\.[A-Z_]+$')

def isspecialtarget(output):
    """
    Targets like .PHONY or .SUFFIXES configure make and are never built.
    """
    return _specialtarget.match(output) is not None

def shellquote(s):
    return "'%s'" % (s.replace("'", "'\\''"),)


class NinjaNode(object):
    """
    A target that gets a build statement. rule_id is -1 when the recipe
    evaluated to no commands and the statement uses the phony rule.
    """
    __slots__ = ('node', 'commands', 'rule_id')

    def __init__(self, node, commands, rule_id):
        self.node = node
        self.commands = commands
        self.rule_id = rule_id

    def __repr__(self):
        return "NinjaNode(%r, rule_id=%i)" % (self.node.output, self.rule_id)


class NinjaGenerator(object):
    def __init__(self, evaluator, flags, start_time, program=None):
        self.evaluator = evaluator
        self.flags = flags
        self.heuristics = flags.heuristics
        self.start_time = start_time
        if program is None:
            program = os.path.realpath(sys.argv[0])
        self.program = program

        self.ce = CommandEvaluator(evaluator)
        self.nodes = []
        self.used_envs = []
        self._done = set()
        self._ruleid = 0

        # (traversal index, DepNode); written from the stanza renderers
        self._lock = threading.Lock()
        self._default_target = None

        self.shell = escape_ninja(evaluator.shell)
        self.shellflag = escape_ninja(evaluator.shellflag)

        use_remote = flags.use_remote
        if use_remote is None:
            s = evaluator.eval_variable('USE_GOMA')
            use_remote = not (s == '' or s == 'false')
        self.use_remote = use_remote

    @property
    def default_target(self):
        if self._default_target is None:
            return None
        return self._default_target[1]

    def generate(self, nodes, orig_args=''):
        """
        nodes is the list of (name, DepNode) roots of the graph.
        """
        try:
            os.unlink(self.flags.stampfilename)
        except FileNotFoundError:
            pass

        self.evaluator.avoid_io = True
        try:
            self.populatenodes(nodes)
            self.generateninja()
            self.generateshell()
            self.generatestamp(orig_args)
        finally:
            self.evaluator.avoid_io = False

    def populatenodes(self, nodes):
        """
        Depth-first walk over deps, order-only deps and validations, in that
        order, evaluating each target's recipe once. Targets without a rule
        that are not phony get no build statement, but what they depend on
        is still visited.
        """
        t = time.time()
        stack = [node for name, node in reversed(nodes)]
        while stack:
            node = stack.pop()
            if node.output in self._done:
                continue
            self._done.add(node.output)

            # Ninja would otherwise try to clean up the top-level directory.
            if node.output in self.heuristics.skip_outputs:
                continue

            if node.has_rule or node.is_phony:
                self.populatenode(node)

            children = node.deps + node.order_onlys + node.validations
            for name, child in reversed(children):
                stack.append(child)

        _log.info("evaluated %i targets in %.3fs", len(self.nodes), time.time() - t)

    def populatenode(self, node):
        with self.evaluator.enter(FRAME_NINJA, node.output, node.loc):
            commands = self.ce.eval(node)

        if commands:
            rule_id = self._ruleid
            self._ruleid += 1
        else:
            rule_id = -1
        nn = NinjaNode(node, commands, rule_id)
        self.nodes.append(nn)
        return nn

    def getdepfile(self, node, cmd):
        """
        @returns (cmd, depfile) where depfile may be None
        """
        if node.depfile_var is not None:
            depfile = node.depfile_var.evaluate(self.evaluator, '.KATI_DEPFILE').strip()
            return cmd, depfile or None

        if not self.flags.detect_depfiles:
            return cmd, None

        return get_depfile_from_command(cmd, self.heuristics)

    def emitnode(self, index, nn, out):
        node = nn.node
        commands = nn.commands

        if isspecialtarget(node.output):
            return

        rule_name = 'phony'
        use_local_pool = False
        if self.flags.enable_debug:
            out.write("# %s\n" % (node.loc or '(null)',))

        if commands:
            rule_name = 'rule%d' % (nn.rule_id,)
            out.write("rule %s\n" % (rule_name,))

            cmd, description, uses_wrapper = gen_shell_script(node.output, commands, self.heuristics)
            # local_pool holds the commands that do NOT go through the
            # remote wrapper while remote compilation is on: they run on
            # this machine and must not run at the remote -j level.
            # Wrapped commands get no pool.
            remote = self.use_remote or self.flags.remote_num_jobs or self.heuristics.remote_wrapper
            use_local_pool = bool(remote) and not uses_wrapper

            if description is None:
                description = 'build $out'
            out.write(" description = %s\n" % (description,))

            cmd, depfile = self.getdepfile(node, cmd)
            if depfile is not None:
                out.write(" depfile = %s\n" % (depfile,))
                out.write(" deps = gcc\n")

            if len(cmd) > COMMAND_LINE_LIMIT:
                out.write(" rspfile = $out.rsp\n")
                out.write(" rspfile_content = %s\n" % (cmd,))
                out.write(" command = %s $out.rsp\n" % (self.shell,))
            else:
                out.write(' command = %s %s "%s"\n' % (self.shell, self.shellflag, escape_shell(cmd)))

            if node.is_restat:
                out.write(" restat = 1\n")

        self.emitbuild(index, nn, rule_name, use_local_pool, out)

    def emitbuild(self, index, nn, rule_name, use_local_pool, out):
        node = nn.node
        out.write("build %s" % (escape_ninja(node.output),))
        if node.implicit_outputs:
            out.write(" |")
            for output in node.implicit_outputs:
                out.write(" %s" % (escape_ninja(output),))
        out.write(": %s" % (rule_name,))

        if node.is_phony and not self.flags.use_ninja_phony_output:
            out.write(" %s" % (ALWAYS_BUILD,))
        for name, d in node.deps:
            out.write(" %s" % (escape_ninja(name),))
        if node.order_onlys:
            out.write(" ||")
            for name, d in node.order_onlys:
                out.write(" %s" % (escape_ninja(name),))
        if node.validations:
            out.write(" |@")
            for name, d in node.validations:
                out.write(" %s" % (escape_ninja(name),))
        out.write("\n")

        if node.symlink_outputs:
            out.write(" symlink_outputs =")
            for s in node.symlink_outputs:
                out.write(" %s" % (escape_ninja(s),))
            out.write("\n")

        pool = ''
        if node.pool_var is not None:
            pool = node.pool_var.evaluate(self.evaluator, '.KATI_NINJA_POOL').strip()

        if pool:
            if pool != 'none':
                out.write(" pool = %s\n" % (pool,))
        elif self.flags.default_pool and rule_name != 'phony':
            out.write(" pool = %s\n" % (self.flags.default_pool,))
        elif use_local_pool:
            out.write(" pool = local_pool\n")

        if node.is_phony and self.flags.use_ninja_phony_output:
            out.write(" phony_output = true\n")

        if node.is_default_target:
            self.setdefaulttarget(index, node)

    def setdefaulttarget(self, index, node):
        """
        The last default-flagged target in traversal order wins, whatever
        order the stanzas are rendered in.
        """
        with self._lock:
            if self._default_target is not None and self._default_target[0] > index:
                return
            if self._default_target is not None and self._default_target[1] is not node:
                _log.info("default target %s replaces %s", node.output, self._default_target[1].output)
            self._default_target = (index, node)

    def rendernodes(self):
        def render(item):
            index, nn = item
            out = StringIO()
            self.emitnode(index, nn, out)
            return out.getvalue()

        items = list(enumerate(self.nodes))
        if self.flags.parallelism > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.flags.parallelism) as executor:
                return list(executor.map(render, items))

        return [render(item) for item in items]

    def collectusedenvs(self):
        names = set(self.evaluator.usage.used_env_vars)
        # PATH changes what $(shell) runs.
        names.add('PATH')
        return [(name, self.evaluator.getenv(name)) for name in sorted(names)]

    def getdefaulttargets(self):
        flags = self.flags
        if not flags.targets or flags.gen_all_targets:
            if self._default_target is None:
                raise errors.NoDefaultTargetError("no default target: no goal was given and no target is marked as the default")
            return escape_ninja(self._default_target[1].output)

        return ' '.join(escape_ninja(t) for t in flags.targets)

    def _open(self, path):
        try:
            return open(path, 'w', encoding='utf-8', errors='surrogateescape')
        except OSError as e:
            raise errors.MakeError("cannot open %s for writing: %s" % (path, e))

    def generateninja(self):
        flags = self.flags
        t = time.time()

        stanzas = []
        if flags.generate_empty_ninja:
            for index, nn in enumerate(self.nodes):
                if nn.node.is_default_target and not isspecialtarget(nn.node.output):
                    self.setdefaulttarget(index, nn.node)
        else:
            stanzas = self.rendernodes()
        # An unresolvable default is fatal even when no stanzas are written.
        default_targets = self.getdefaulttargets()

        self.used_envs = self.collectusedenvs()

        with self._open(flags.ninjafilename) as out:
            out.write("# Generated by pykati %s\n\n" % (pykati.__version__,))

            if self.used_envs:
                out.write("# Environment variables used:\n")
                for name, value in self.used_envs:
                    out.write("# %s=%s\n" % (name, value))
                out.write("\n")

            if not flags.no_ninja_prelude:
                if flags.ninja_dir:
                    out.write("builddir = %s\n\n" % (flags.ninja_dir,))

                out.write("pool local_pool\n")
                out.write(" depth = %d\n\n" % (flags.num_jobs,))

                if not flags.use_ninja_phony_output:
                    out.write("build %s: phony\n\n" % (ALWAYS_BUILD,))

            for s in stanzas:
                out.write(s)

            if not flags.generate_empty_ninja:
                out.write("\ndefault %s\n" % (default_targets,))

        _log.info("wrote %s in %.3fs", flags.ninjafilename, time.time() - t)

    def generateshell(self):
        flags = self.flags
        ev = self.evaluator

        with self._open(flags.envscriptfilename) as fd:
            fd.write("#!/bin/sh\n")
            fd.write("# Generated by pykati %s\n" % (pykati.__version__,))
            fd.write("\n")

            for name, exported in ev.exports.items():
                if exported:
                    fd.write("export %s=%s\n" % (shellquote(name), shellquote(ev.eval_variable(name))))
                else:
                    fd.write("unset %s\n" % (shellquote(name),))

        with self._open(flags.shellscriptfilename) as fd:
            fd.write("#!/bin/sh\n")
            fd.write("# Generated by pykati %s\n" % (pykati.__version__,))
            fd.write("\n")

            fd.write(". %s\n" % (flags.envscriptfilename,))

            fd.write("exec ninja -f %s " % (flags.ninjafilename,))
            if flags.remote_num_jobs > 0:
                fd.write("-j%d " % (flags.remote_num_jobs,))
            elif self.heuristics.remote_wrapper:
                fd.write("-j500 ")
            fd.write('"$@"\n')

        os.chmod(flags.shellscriptfilename, 0o755)

    def generatestamp(self, orig_args):
        s = Stamp.collect(self.evaluator, self.program, orig_args, self.start_time, self.used_envs)
        StampWriter(self.flags.stampfilename, self.flags.stamptempfilename).write(s)


def generate_ninja(nodes, evaluator, flags, orig_args='', start_time=None, program=None):
    if start_time is None:
        start_time = time.time()
    ng = NinjaGenerator(evaluator, flags, start_time, program)
    ng.generate(nodes, orig_args)
    return ng
