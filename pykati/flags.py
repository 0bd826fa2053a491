"""
Settings for one build-plan generation run.
"""
import os

from pykati.translate import Heuristics


class Flags(object):
    """
    ninja_dir               directory the generated files are written to
    ninja_suffix            inserted into every generated file name
    num_jobs                depth of the local_pool
    remote_num_jobs         -j passed to ninja by ninja.sh when compiling remotely
    default_pool            pool for every rule that is not phony
    targets                 explicit goals; empty means the makefile default
    gen_all_targets         emit every target even when goals were given
    detect_depfiles         guess depfiles from compiler flags
    use_ninja_phony_output  mark phony targets with phony_output instead of
                            an always-dirty dependency
    no_ninja_prelude        omit builddir, local_pool and the always-build target
    generate_empty_ninja    emit the prelude only
    enable_debug            annotate each stanza with its makefile location
    use_remote              remote compilation is enabled for the whole build;
                            None reads USE_GOMA from the makefile
    parallelism             threads used to render build stanzas
    heuristics              the command rewrites to apply
    """

    def __init__(self, ninja_dir=None, ninja_suffix='', num_jobs=1,
                 remote_num_jobs=0, default_pool=None, targets=(),
                 gen_all_targets=False, detect_depfiles=True,
                 use_ninja_phony_output=False, no_ninja_prelude=False,
                 generate_empty_ninja=False, enable_debug=False,
                 use_remote=None, parallelism=1, heuristics=None):
        self.ninja_dir = ninja_dir
        self.ninja_suffix = ninja_suffix or ''
        self.num_jobs = num_jobs
        self.remote_num_jobs = remote_num_jobs
        self.default_pool = default_pool
        self.targets = list(targets)
        self.gen_all_targets = gen_all_targets
        self.detect_depfiles = detect_depfiles
        self.use_ninja_phony_output = use_ninja_phony_output
        self.no_ninja_prelude = no_ninja_prelude
        self.generate_empty_ninja = generate_empty_ninja
        self.enable_debug = enable_debug
        self.use_remote = use_remote
        self.parallelism = max(1, parallelism)
        if heuristics is None:
            heuristics = Heuristics()
        self.heuristics = heuristics

    def getfilename(self, fmt):
        return os.path.join(self.ninja_dir or '.', fmt % (self.ninja_suffix,))

    @property
    def ninjafilename(self):
        return self.getfilename('build%s.ninja')

    @property
    def shellscriptfilename(self):
        return self.getfilename('ninja%s.sh')

    @property
    def envscriptfilename(self):
        return self.getfilename('env%s.sh')

    @property
    def stampfilename(self):
        return self.getfilename('.pykati_stamp%s')

    @property
    def stamptempfilename(self):
        return self.getfilename('.pykati_stamp%s.tmp')
