"""
Turning recipe commands into Ninja rule commands.

Make hands every recipe line to its own shell; a Ninja rule has a single
command string. The functions here join a recipe into one shell script,
escape it for the Ninja file, and apply a set of rewrites that recover
information Ninja can use (a description, a depfile) from commands that
only make sense under make.

The rewrites are product-specific guesses. They are collected in Heuristics
so a caller can switch any of them off.
"""
import logging, os, re

from pykati.command import dirpart

_log = logging.getLogger('pykati.translate')


class Heuristics(object):
    """
    Switches for the command rewrites.

    detect_echo_description   turn a leading "echo text" into the rule description
    description_needs_silent  only do so for @-prefixed (silent) echo commands
    strip_output_mkdir        drop a leading "mkdir -p" of the output's directory
    remote_wrapper            path of a remote compile wrapper to splice in front
                              of compiler invocations, or None
    remote_wrapper_names      substrings showing a command already uses a wrapper
    compiler_prefixes         toolchain directories a compiler must live under
    compiler_suffixes         compiler executable names
    no_depfile_tools          commands which take -MD but never write a depfile
    legacy_p_depfiles         honor the "cp x.d x.P; rm -f x.d" idiom
    skip_assembler_depfiles   no depfile when the input is a .s file
    skip_outputs              outputs left out of the plan altogether
    """

    def __init__(self, detect_echo_description=True, description_needs_silent=False,
                 strip_output_mkdir=True, remote_wrapper=None,
                 remote_wrapper_names=('/gomacc',),
                 compiler_prefixes=('prebuilts/gcc/', 'prebuilts/clang/'),
                 compiler_suffixes=('gcc', 'g++', 'clang', 'clang++'),
                 no_depfile_tools=('bin/llvm-rs-cc ',),
                 legacy_p_depfiles=True, skip_assembler_depfiles=True,
                 skip_outputs=()):
        self.detect_echo_description = detect_echo_description
        self.description_needs_silent = description_needs_silent
        self.strip_output_mkdir = strip_output_mkdir
        self.remote_wrapper = remote_wrapper
        self.remote_wrapper_names = tuple(remote_wrapper_names)
        self.compiler_prefixes = tuple(compiler_prefixes)
        self.compiler_suffixes = tuple(compiler_suffixes)
        self.no_depfile_tools = tuple(no_depfile_tools)
        self.legacy_p_depfiles = legacy_p_depfiles
        self.skip_assembler_depfiles = skip_assembler_depfiles
        self.skip_outputs = frozenset(skip_outputs)

    @staticmethod
    def android(remote_dir=None):
        """
        The rewrites tuned for the Android platform build. remote_dir is the
        directory holding the gomacc wrapper, if remote compilation is used.
        """
        wrapper = None
        if remote_dir:
            wrapper = '%s/gomacc ' % (remote_dir,)
        return Heuristics(description_needs_silent=True, remote_wrapper=wrapper,
                          skip_outputs=('out',))

    @staticmethod
    def none():
        return Heuristics(detect_echo_description=False, strip_output_mkdir=False,
                          remote_wrapper_names=(), no_depfile_tools=(),
                          legacy_p_depfiles=False, skip_assembler_depfiles=False)


def translate_command(s):
    """
    Rewrite one shell command for use inside a Ninja command: strip shell
    comments, double '$', join backslash-continued lines and turn other
    newlines into spaces. Trailing whitespace and ';' are removed.

    Quotes are tracked only to tell comments from '#' inside strings; an
    unbalanced quote simply stays open to the end of the command.
    """
    out = []
    prev_backslash = False
    # Start as if after a space so a leading comment is stripped.
    prev_char = ' '
    quote = None
    i = 0
    n = len(s)
    while i < n:
        c = s[i]
        if c == '#' and quote is None and prev_char.isspace():
            while i + 1 < n and s[i] != '\n':
                i += 1
            c = s[i]
            prev_backslash = False
            prev_char = c
            i += 1
            continue

        if c in '\'"`':
            if quote is not None:
                if quote == c:
                    quote = None
            elif not prev_backslash:
                quote = c
            out.append(c)
        elif c == '$':
            out.append('$$')
        elif c == '\n':
            if prev_backslash:
                out.pop()
                if out and not out[-1].isspace():
                    out.append(' ')
            else:
                out.append(' ')
        else:
            out.append(c)

        if c == '\\':
            prev_backslash = not prev_backslash
        else:
            prev_backslash = False

        prev_char = c
        i += 1

    if prev_backslash:
        out.pop()

    return ''.join(out).rstrip(' \t\n\r\f\v;')

def is_output_mkdir(output, cmd):
    """
    Whether cmd only creates the directory output lives in, which Ninja
    does by itself.
    """
    if not cmd.startswith('mkdir -p '):
        return False

    d = cmd[len('mkdir -p '):]
    if d.endswith('/'):
        d = d[:-1]
    return d == dirpart(output)

def get_description_from_command(cmd):
    """
    If cmd is a single "echo ..." command, return what it prints, with the
    outer quotes removed. Return None for anything else, including echo
    commands whose output is redirected, which are followed by another
    command, or whose quoting is unbalanced.
    """
    if not cmd.startswith('echo '):
        return None

    prev_backslash = False
    quote = None
    r = []
    for c in cmd[len('echo '):]:
        if prev_backslash:
            prev_backslash = False
            r.append(c)
        elif c == '\\':
            prev_backslash = True
            r.append(c)
        elif quote is not None:
            if c == quote:
                quote = None
            else:
                r.append(c)
        elif c in '\'"`':
            quote = c
        elif c in '<>&|;':
            return None
        else:
            r.append(c)

    if quote is not None or prev_backslash:
        return None
    return ''.join(r)

def get_remote_wrapper_pos(cmdline, heuristics):
    """
    Return the offset in cmdline where a remote compile wrapper should be
    inserted, or -1 when cmdline is not a compile command the wrapper
    understands. A leading ccache is skipped.
    """
    index = cmdline.find(' ')
    if index == -1:
        return -1

    cmd = cmdline[:index]
    if cmd.endswith('ccache'):
        index += 1
        pos = get_remote_wrapper_pos(cmdline[index:], heuristics)
        if pos == -1:
            return -1
        return pos + index

    if not cmd.startswith(heuristics.compiler_prefixes):
        return -1
    if not cmd.endswith(heuristics.compiler_suffixes):
        return -1

    if ' -c ' in cmdline[index:]:
        return 0
    return -1

def _findflag(cmd, name):
    found = cmd.find(name)
    if found <= 0:
        return -1
    return found

_argend = re.compile('[ \t]')

def _findflagwitharg(cmd, name):
    """
    The argument of the last occurrence of flag name in cmd, or ''.
    """
    index = _findflag(cmd, name)
    if index == -1:
        return ''

    val = cmd[index + len(name):].lstrip()
    index = val.find(name)
    while index != -1:
        val = val[index + len(name):].lstrip()
        index = val.find(name)

    m = _argend.search(val)
    if m is None:
        return val
    return val[:m.start()]

def stripext(path):
    return os.path.splitext(path)[0]

def depfile_from_flags(cmd):
    """
    Work out the depfile a compile command writes from its -MD/-MMD, -MF
    and -o flags. Returns None if the command does not write one.
    """
    if ((_findflag(cmd, ' -MD') == -1 and _findflag(cmd, ' -MMD') == -1) or
        _findflag(cmd, ' -c') == -1):
        return None

    mf = _findflagwitharg(cmd, ' -MF')
    if mf:
        return mf

    o = _findflagwitharg(cmd, ' -o')
    if not o:
        _log.error("Cannot find the depfile in %s", cmd)
        return None

    return stripext(o) + '.d'

def get_depfile_from_command(cmd, heuristics):
    """
    Detect the depfile written by cmd and adjust cmd for Ninja.

    Compilers only rewrite the depfile when they rebuild, so a copy to
    "<depfile>.tmp" is appended to the command and the copy is what Ninja
    reads.

    @returns (cmd, depfile); depfile is None when none was detected and
             cmd is then unchanged
    """
    # A trailing space lets flags at the very end match " -c" and friends.
    padded = cmd + ' '
    depfile = depfile_from_flags(padded)
    if depfile is None:
        return cmd, None

    for tool in heuristics.no_depfile_tools:
        if tool in padded:
            return cmd, None

    if heuristics.legacy_p_depfiles:
        p = stripext(depfile) + '.P'
        if p in padded:
            rm_f = '; rm -f ' + depfile
            found = padded.find(rm_f)
            if found == -1:
                _log.error("Cannot find removal of .d file: %s", cmd)
            else:
                padded = padded[:found] + padded[found + len(rm_f):]
            return padded[:-1], p

    if heuristics.skip_assembler_depfiles:
        # The assembler is not run through the preprocessor and ignores -MF.
        if '/' + stripext(os.path.basename(depfile)) + '.s' in padded:
            return cmd, None

    padded += '&& cp %s %s.tmp ' % (depfile, depfile)
    return padded[:-1], depfile + '.tmp'

def gen_shell_script(output, commands, heuristics):
    """
    Join the commands of one recipe into a single shell command.

    Commands are chained with '&&'. Each is run in a subshell when there is
    more than one, or when its failure is ignored ("-" prefix), so that
    "; true" cannot swallow the failure of an earlier command.

    @returns (cmd, description, uses_wrapper); description is None unless
             an echo command was turned into one, uses_wrapper tells whether
             any command runs through a remote compile wrapper
    """
    parts = []
    description = None
    uses_wrapper = False
    command_count = len(commands)
    for c in commands:
        needs_subshell = command_count > 1 or c.ignore_error
        translated = translate_command(c.cmd.lstrip())

        first = not parts
        if (heuristics.detect_echo_description and description is None and first and
            not (heuristics.description_needs_silent and c.echo)):
            description = get_description_from_command(translated)
            if description is not None:
                translated = ''
        if (translated and heuristics.strip_output_mkdir and first and
            is_output_mkdir(output, translated)):
            translated = ''

        if not translated:
            command_count -= 1
            continue

        if heuristics.remote_wrapper:
            pos = get_remote_wrapper_pos(translated, heuristics)
            if pos != -1:
                translated = translated[:pos] + heuristics.remote_wrapper + translated[pos:]
                uses_wrapper = True
        elif any(name in translated for name in heuristics.remote_wrapper_names):
            uses_wrapper = True

        if c.ignore_error:
            translated += ' ; true'
        if needs_subshell:
            translated = '(%s )' % (translated,)
        parts.append(translated)

    return ' && '.join(parts), description, uses_wrapper

_shellescape = re.compile(r'\$\$|["$\\`]')

def escape_shell(s):
    """
    Escape s for use between double quotes in a shell command. '$$', a
    Ninja-escaped dollar, is kept as one unit.
    """
    return _shellescape.sub(lambda m: '\\' + m.group(0), s)

_ninjaescape = re.compile('([$: ])')

def escape_ninja(s):
    """
    Escape a path for a Ninja build line: '$', ':' and ' ' get a '$' prefix.
    """
    return _ninjaescape.sub(r'$\1', s)
