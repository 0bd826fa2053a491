import unittest

from pykati import errors
from pykati.basic import Location, FRAME_CALL
from pykati.evaluator import Evaluator
from pykati.variables import (Variable, Variables, UsageTracker,
                              ORIGIN_AUTOMATIC, ORIGIN_COMMAND_LINE,
                              ORIGIN_DEFAULT, ORIGIN_ENVIRONMENT,
                              ORIGIN_FILE, ORIGIN_OVERRIDE,
                              OP_EQ, OP_COLON_EQ, OP_PLUS_EQ, OP_QUESTION_EQ)

class LookupTest(unittest.TestCase):
    def test_undefined(self):
        vs = Variables()
        v = vs.lookup('NOPE')
        self.assertIs(v, Variable.UNDEFINED)
        self.assertFalse(v.is_defined())
        self.assertEqual(v.evaluate(Evaluator(env={}), 'NOPE'), '')
        self.assertIsNone(vs.peek('NOPE'))

    def test_environment_usage(self):
        ev = Evaluator(env={'FOO': 'bar', 'OTHER': 'x'})
        ev.variables.peek('OTHER')
        self.assertEqual(ev.usage.used_env_vars, set())

        self.assertEqual(ev.eval_variable('FOO'), 'bar')
        self.assertEqual(ev.usage.used_env_vars, set(['FOO']))

    def test_file_variable_not_env_usage(self):
        usage = UsageTracker()
        vs = Variables(usage)
        vs.assign('FOO', Variable.simple('1', ORIGIN_FILE))
        vs.lookup('FOO')
        self.assertEqual(usage.used_env_vars, set())

    def test_undefined_usage(self):
        ev = Evaluator(env={})
        self.assertEqual(ev.eval_variable('UNSET'), '')
        self.assertIn('UNSET', ev.usage.used_undefined_vars)

class PrecedenceTest(unittest.TestCase):
    def test_environment_loses_to_file(self):
        vs = Variables()
        self.assertTrue(vs.assign('X', Variable.simple('a', ORIGIN_FILE)))
        self.assertFalse(vs.assign('X', Variable.simple('b', ORIGIN_ENVIRONMENT)))
        self.assertEqual(vs.lookup('X').value, 'a')

    def test_command_line_beats_file(self):
        vs = Variables()
        vs.assign('X', Variable.simple('a', ORIGIN_FILE))
        self.assertTrue(vs.assign('X', Variable.simple('c', ORIGIN_COMMAND_LINE)))
        self.assertFalse(vs.assign('X', Variable.simple('d', ORIGIN_FILE)))
        self.assertEqual(vs.lookup('X').value, 'c')

        self.assertTrue(vs.assign('X', Variable.simple('e', ORIGIN_OVERRIDE)))
        self.assertEqual(vs.lookup('X').originname, 'override')

    def test_equal_origin_replaces(self):
        vs = Variables()
        vs.assign('X', Variable.simple('a', ORIGIN_FILE))
        self.assertTrue(vs.assign('X', Variable.simple('b', ORIGIN_FILE)))
        self.assertEqual(vs.lookup('X').value, 'b')

    def test_force(self):
        vs = Variables()
        vs.assign('X', Variable.simple('a', ORIGIN_COMMAND_LINE))
        self.assertTrue(vs.assign('X', Variable.simple('b', ORIGIN_DEFAULT), force=True))
        self.assertEqual(vs.lookup('X').value, 'b')

    def test_environment_is_overridden_by_makefile(self):
        ev = Evaluator(env={'CC': 'cc'})
        self.assertTrue(ev.assign('CC', OP_EQ, 'gcc'))
        self.assertEqual(ev.eval_variable('CC'), 'gcc')

    def test_shell_not_from_environment(self):
        ev = Evaluator(env={'SHELL': '/bin/zsh'})
        self.assertEqual(ev.shell, '/bin/sh')
        self.assertEqual(ev.shellflag, '-c')

class ReadOnlyTest(unittest.TestCase):
    def test_strict(self):
        vs = Variables()
        v = Variable.simple('a', ORIGIN_FILE)
        vs.assign('X', v)
        v.setreadonly()
        with self.assertRaises(errors.ReadOnlyError) as cm:
            vs.assign('X', Variable.simple('b', ORIGIN_OVERRIDE), force=True)
        self.assertEqual(cm.exception.name, 'X')
        self.assertIn('cannot assign to readonly variable: X', str(cm.exception))
        self.assertIs(vs.lookup('X'), v)

    def test_lenient(self):
        vs = Variables()
        v = Variable.simple('a', ORIGIN_FILE)
        vs.assign('X', v)
        v.setreadonly()
        with self.assertLogs('pykati.data', level='WARNING'):
            self.assertFalse(vs.assign('X', Variable.simple('b', ORIGIN_FILE), strict=False))
        self.assertIs(vs.lookup('X'), v)

    def test_append(self):
        ev = Evaluator(env={})
        ev.assign('X', OP_COLON_EQ, 'a')
        ev.variables.lookup('X').setreadonly()
        self.assertRaises(errors.ReadOnlyError, ev.assign, 'X', OP_PLUS_EQ, 'b')
        self.assertEqual(ev.eval_variable('X'), 'a')

class SelfReferenceTest(unittest.TestCase):
    def test_direct(self):
        ev = Evaluator(env={})
        ev.assign('A', OP_EQ, 'x $(A)')
        with self.assertRaises(errors.DataError) as cm:
            ev.eval_variable('A')
        self.assertIn("Recursive variable 'A' references itself (eventually)", str(cm.exception))
        self.assertTrue(ev.variables.lookup('A').self_referential)

        # the value still refers to itself, so a second read fails too
        self.assertRaises(errors.DataError, ev.eval_variable, 'A')

    def test_cycle(self):
        ev = Evaluator(env={})
        ev.assign('A', OP_EQ, '$(B)')
        ev.assign('B', OP_EQ, '$(C)')
        ev.assign('C', OP_EQ, '$(A)')
        self.assertRaises(errors.DataError, ev.eval_variable, 'A')
        self.assertEqual(ev.activevariables(), set())

    def test_broken_cycle(self):
        ev = Evaluator(env={})
        ev.assign('A', OP_EQ, '$(B)')
        ev.assign('B', OP_EQ, '$(A)')
        self.assertRaises(errors.DataError, ev.eval_variable, 'A')

        ev.assign('B', OP_COLON_EQ, 'x')
        self.assertEqual(ev.eval_variable('A'), 'x')
        # the flag stays as a record of the earlier failure
        self.assertTrue(ev.variables.lookup('A').self_referential)

    def test_repeated_reference_is_not_a_cycle(self):
        ev = Evaluator(env={})
        ev.assign('A', OP_EQ, 'x')
        ev.assign('B', OP_EQ, '$(A) $(A)')
        ev.assign('C', OP_EQ, '$(B)-$(B)')
        self.assertEqual(ev.eval_variable('C'), 'x x-x x')
        self.assertFalse(ev.variables.lookup('B').self_referential)

    def test_simple_self_reference(self):
        ev = Evaluator(env={})
        ev.assign('A', OP_COLON_EQ, 'a')
        ev.assign('A', OP_COLON_EQ, '$(A) b')
        self.assertEqual(ev.eval_variable('A'), 'a b')

class LazyEvaluationTest(unittest.TestCase):
    def test_recursive_sees_current_store(self):
        ev = Evaluator(env={})
        ev.assign('A', OP_EQ, '$(B)')
        ev.assign('B', OP_EQ, 'one')
        self.assertEqual(ev.eval_variable('A'), 'one')
        ev.assign('B', OP_EQ, 'two')
        self.assertEqual(ev.eval_variable('A'), 'two')

    def test_simple_is_frozen(self):
        ev = Evaluator(env={})
        ev.assign('B', OP_EQ, 'one')
        ev.assign('A', OP_COLON_EQ, '$(B)')
        ev.assign('B', OP_EQ, 'two')
        self.assertEqual(ev.eval_variable('A'), 'one')

    def test_conditional(self):
        ev = Evaluator(env={})
        self.assertTrue(ev.assign('Q', OP_QUESTION_EQ, '1'))
        self.assertFalse(ev.assign('Q', OP_QUESTION_EQ, '2'))
        self.assertEqual(ev.eval_variable('Q'), '1')

    def test_callable(self):
        ev = Evaluator(env={})
        self.assertTrue(Variable.recursive('$(1) x').is_callable(ev))
        self.assertFalse(Variable.recursive('plain').is_callable(ev))
        self.assertFalse(Variable.simple('$(1)').is_callable(ev))

    def test_raw_text(self):
        v = Variable.recursive('$(A) b')
        self.assertEqual(v.raw_text(), '$(A) b')
        self.assertEqual(Variable.names('.VARIABLES', False).raw_text(), '')

    def test_definition_frame(self):
        ev = Evaluator(env={})
        with ev.enter(FRAME_CALL, 'myfunc', Location('Makefile', 7)) as frame:
            ev.assign('A', OP_EQ, 'x', loc=Location('Makefile', 8))
        v = ev.variables.lookup('A')
        self.assertIs(v.definition, frame)
        self.assertIs(v.definition.parent, ev.rootframe)
        self.assertEqual(str(v.loc), 'Makefile:8')

class AppendTest(unittest.TestCase):
    def test_simple(self):
        ev = Evaluator(env={})
        ev.assign('V', OP_EQ, 'b')
        ev.assign('S', OP_COLON_EQ, 'a')
        ev.assign('S', OP_PLUS_EQ, '$(V)')
        ev.assign('V', OP_EQ, 'c')
        v = ev.variables.lookup('S')
        self.assertEqual(v.flavor, Variable.FLAVOR_SIMPLE)
        self.assertEqual(ev.eval_variable('S'), 'a b')

    def test_recursive(self):
        ev = Evaluator(env={})
        ev.assign('R', OP_EQ, 'x')
        ev.assign('R', OP_PLUS_EQ, '$(V)')
        self.assertEqual(ev.variables.lookup('R').raw_text(), 'x $(V)')
        ev.assign('V', OP_EQ, 'y')
        self.assertEqual(ev.eval_variable('R'), 'x y')

    def test_undefined(self):
        ev = Evaluator(env={})
        ev.assign('N', OP_PLUS_EQ, 'z')
        v = ev.variables.lookup('N')
        self.assertEqual(v.flavor, Variable.FLAVOR_RECURSIVE)
        self.assertEqual(ev.eval_variable('N'), 'z')

    def test_empty(self):
        ev = Evaluator(env={})
        ev.assign('E', OP_COLON_EQ, '')
        ev.assign('E', OP_PLUS_EQ, 'z')
        self.assertEqual(ev.eval_variable('E'), 'z')

    def test_keeps_stronger_origin(self):
        ev = Evaluator(env={})
        ev.assign('C', OP_EQ, 'a', origin=ORIGIN_COMMAND_LINE)
        ev.assign('C', OP_PLUS_EQ, 'b', origin=ORIGIN_FILE)
        v = ev.variables.lookup('C')
        self.assertEqual(v.origin, ORIGIN_COMMAND_LINE)
        self.assertEqual(ev.eval_variable('C'), 'a b')

class ScopedVarTest(unittest.TestCase):
    def test_restore(self):
        vs = Variables()
        outer = Variable.simple('outer', ORIGIN_FILE)
        vs.assign('X', outer)

        inner = Variable.simple('inner', ORIGIN_AUTOMATIC)
        with vs.scoped('X', inner):
            self.assertIs(vs.lookup('X'), inner)
        self.assertIs(vs.lookup('X'), outer)

    def test_restore_on_exception(self):
        vs = Variables()
        outer = Variable.simple('outer', ORIGIN_FILE)
        vs.assign('X', outer)

        try:
            with vs.scoped('X', Variable.simple('inner', ORIGIN_AUTOMATIC)):
                raise ValueError('boom')
        except ValueError:
            pass
        self.assertIs(vs.lookup('X'), outer)

    def test_unbound_is_removed(self):
        vs = Variables()
        with vs.scoped('@', Variable.simple('out', ORIGIN_AUTOMATIC)):
            self.assertEqual(vs.lookup('@').value, 'out')
        self.assertIsNone(vs.peek('@'))
        self.assertNotIn('@', vs)

    def test_nested(self):
        vs = Variables()
        a = Variable.simple('a', ORIGIN_AUTOMATIC)
        b = Variable.simple('b', ORIGIN_AUTOMATIC)
        with vs.scoped('X', a):
            with vs.scoped('X', b):
                self.assertIs(vs.lookup('X'), b)
            self.assertIs(vs.lookup('X'), a)
        self.assertIsNone(vs.peek('X'))

    def test_ignores_precedence(self):
        vs = Variables()
        vs.assign('X', Variable.simple('cmdline', ORIGIN_COMMAND_LINE))
        with vs.scoped('X', Variable.simple('target', ORIGIN_FILE)):
            self.assertEqual(vs.lookup('X').value, 'target')
        self.assertEqual(vs.lookup('X').value, 'cmdline')

class NamesTest(unittest.TestCase):
    def test_variables(self):
        ev = Evaluator(env={})
        ev.assign('ZED', OP_EQ, '1')
        ev.assign('ALPHA', OP_EQ, '1')
        names = ev.eval_variable('.VARIABLES').split()
        self.assertEqual(names, sorted(names))
        for n in ('ZED', 'ALPHA', 'SHELL', 'CURDIR', '.VARIABLES'):
            self.assertIn(n, names)

    def test_symbols(self):
        ev = Evaluator(env={})
        ev.eval_variable('NEVER_SET')
        self.assertNotIn('NEVER_SET', ev.eval_variable('.VARIABLES').split())
        self.assertIn('NEVER_SET', ev.eval_variable('.KATI_SYMBOLS').split())

    def test_flavor(self):
        v = Variable.names('.VARIABLES', False)
        self.assertEqual(v.flavor, Variable.FLAVOR_NAMES)
        self.assertTrue(v.is_defined())

class DiagnosticsTest(unittest.TestCase):
    def test_deprecated(self):
        ev = Evaluator(env={})
        ev.assign('OLD', OP_EQ, 'x')
        ev.variables.lookup('OLD').setdeprecated('use NEW')
        with self.assertLogs('pykati.data', level='WARNING') as cm:
            self.assertEqual(ev.eval_variable('OLD'), 'x')
        self.assertIn('OLD has been deprecated: use NEW.', cm.output[0])

    def test_obsolete(self):
        ev = Evaluator(env={})
        ev.assign('GONE', OP_EQ, 'x', loc=Location('Makefile', 3))
        ev.variables.lookup('GONE').setobsolete('removed')
        with self.assertRaises(errors.ObsoleteVariableError) as cm:
            ev.eval_variable('GONE')
        self.assertEqual(str(cm.exception), 'Makefile:3: GONE is obsolete: removed.')

    def test_obsolete_assign(self):
        ev = Evaluator(env={})
        ev.assign('GONE', OP_EQ, 'x')
        ev.variables.lookup('GONE').setobsolete()
        self.assertRaises(errors.ObsoleteVariableError, ev.assign, 'GONE', OP_EQ, 'y')

    def test_append_keeps_diagnostics(self):
        ev = Evaluator(env={})
        ev.assign('OLD', OP_EQ, 'x')
        ev.variables.lookup('OLD').setdeprecated()
        with self.assertLogs('pykati.data', level='WARNING'):
            ev.assign('OLD', OP_PLUS_EQ, 'y')
        self.assertTrue(ev.variables.lookup('OLD').deprecated)

    def test_debug_string(self):
        self.assertEqual(Variable.UNDEFINED.debug_string(), '*undefined*')
        self.assertEqual(Variable.names('.VARIABLES', False).debug_string(), '*.VARIABLES*')
        self.assertIn("'a b'", Variable.simple('a b').debug_string())

if __name__ == '__main__':
    unittest.main()
