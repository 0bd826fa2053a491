"""
The resolved dependency graph handed to the build-plan generator.

Building the graph (rule matching, pattern rules, wildcard expansion) is the
job of the caller; this module only describes its shape. The generator reads
nodes and never changes them.
"""


class RecipeLine(object):
    """
    One unexpanded recipe line as written in the makefile.
    """
    __slots__ = ('text', 'loc')

    def __init__(self, text, loc=None):
        self.text = text
        self.loc = loc

    def __repr__(self):
        return "RecipeLine<%s>(%r)" % (self.loc, self.text)


class DepNode(object):
    """
    A target in the resolved graph.

    deps, order_onlys and validations are lists of (name, DepNode) pairs.
    depfile_var and pool_var, when set, are pykati.variables.Variable
    instances evaluated in the target's context. rule_vars holds the
    target-specific variables as a list of (name, Variable) pairs, applied in
    order while the recipe is evaluated.
    """

    __slots__ = ('output', 'cmds', 'deps', 'order_onlys', 'validations',
                 'has_rule', 'is_phony', 'is_restat', 'is_default_target',
                 'implicit_outputs', 'symlink_outputs', 'actual_inputs',
                 'actual_order_only_inputs', 'rule_vars', 'depfile_var',
                 'pool_var', 'stem', 'loc')

    def __init__(self, output, cmds=(), has_rule=None, is_phony=False,
                 is_restat=False, is_default_target=False, loc=None):
        self.output = output
        self.cmds = [c if isinstance(c, RecipeLine) else RecipeLine(c, loc) for c in cmds]
        self.deps = []
        self.order_onlys = []
        self.validations = []
        if has_rule is None:
            has_rule = bool(self.cmds)
        self.has_rule = has_rule
        self.is_phony = is_phony
        self.is_restat = is_restat
        self.is_default_target = is_default_target
        self.implicit_outputs = []
        self.symlink_outputs = []
        self.actual_inputs = None
        self.actual_order_only_inputs = None
        self.rule_vars = []
        self.depfile_var = None
        self.pool_var = None
        self.stem = None
        self.loc = loc

    def adddep(self, node):
        self.deps.append((node.output, node))
        return node

    def addorderonly(self, node):
        self.order_onlys.append((node.output, node))
        return node

    def addvalidation(self, node):
        self.validations.append((node.output, node))
        return node

    def inputs(self):
        """
        Names used for $^ and friends: actual_inputs when the graph builder
        set them (pattern rules may differ from the edges), else the deps.
        """
        if self.actual_inputs is not None:
            return list(self.actual_inputs)
        return [name for name, node in self.deps]

    def orderonlyinputs(self):
        if self.actual_order_only_inputs is not None:
            return list(self.actual_order_only_inputs)
        return [name for name, node in self.order_onlys]

    def __repr__(self):
        return "DepNode<%s>(%r)" % (self.loc, self.output)
