"""
Filename globbing for $(wildcard), relative to the makefile's working
directory, with every query and its result remembered for the regeneration
stamp.

Differences from the python glob module:

* glob relative to an arbitrary directory
* results are sorted
* a pattern without glob characters matches only if the path exists
"""

import os, re, fnmatch, threading

_globcheck = re.compile('[[*?]')

def hasglob(p):
    return _globcheck.search(p) is not None

def glob(fsdir, path):
    """
    Return paths matching the path glob, relative to fsdir. Excludes '.' and '..'
    """

    dir, leaf = os.path.split(path)
    if dir == '':
        return globpattern(fsdir, leaf)

    if hasglob(dir):
        dirsfound = glob(fsdir, dir)
    else:
        dirsfound = [dir]

    r = []

    for dir in dirsfound:
        fspath = os.path.join(fsdir, dir)
        if not os.path.isdir(fspath):
            continue

        r.extend((os.path.join(dir, found) for found in globpattern(fspath, leaf)))

    return r

def globpattern(dir, pattern):
    """
    Return leaf names in the specified directory which match the pattern.
    """

    if not hasglob(pattern):
        if pattern == '':
            if os.path.isdir(dir):
                return ['']
            return []

        if os.path.exists(os.path.join(dir, pattern)):
            return [pattern]
        return []

    try:
        leaves = os.listdir(dir)
    except OSError:
        return []

    if not pattern.startswith('.'):
        leaves = [l for l in leaves if not l.startswith('.')]

    return sorted(fnmatch.filter(leaves, pattern))


class GlobCache(object):
    """
    Memoizes glob queries. The cache content, in query order, is written to
    the stamp so the next run can tell whether any result changed.
    """

    def __init__(self, workdir):
        self.workdir = workdir
        self._lock = threading.Lock()
        self._cache = {}

    def glob(self, pattern):
        with self._lock:
            files = self._cache.get(pattern)
            if files is None:
                if os.path.isabs(pattern):
                    files = sorted(glob('/', pattern))
                else:
                    files = sorted(glob(self.workdir, pattern))
                self._cache[pattern] = files
            return list(files)

    def items(self):
        with self._lock:
            return [(p, list(f)) for p, f in self._cache.items()]

    def __len__(self):
        return len(self._cache)
