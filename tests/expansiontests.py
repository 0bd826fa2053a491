import os, shutil, tempfile, unittest

from pykati import errors, process
from pykati.evaluator import Evaluator
from pykati.expansion import (parsemakesyntax, Expansion, StringExpansion,
                              VariableRef, SubstitutionRef, ShellFunction,
                              WildcardFunction)
from pykati.variables import OP_EQ, OP_COLON_EQ

def calls(e):
    return [f for f, isfunc in e if isfunc]

class ParseTest(unittest.TestCase):
    def test_static(self):
        e = parsemakesyntax('no references', None)
        self.assertIsInstance(e, StringExpansion)
        self.assertTrue(e.is_static_string)
        self.assertEqual(e.s, 'no references')

    def test_dollar_dollar_is_static(self):
        e = parsemakesyntax('a $$ b', None)
        self.assertTrue(e.is_static_string)
        self.assertEqual(e.s, 'a $ b')

    def test_references(self):
        e = parsemakesyntax('$(A) ${B} $C', None)
        self.assertIsInstance(e, Expansion)
        refs = calls(e)
        self.assertEqual(len(refs), 3)
        self.assertTrue(all(isinstance(r, VariableRef) for r in refs))
        self.assertEqual([r.vname.s for r in refs], ['A', 'B', 'C'])

    def test_substitution(self):
        e = parsemakesyntax('$(SRCS:.c=.o)', None)
        fns = calls(e)
        self.assertEqual(len(fns), 1)
        self.assertIsInstance(fns[0], SubstitutionRef)

    def test_nested_functions(self):
        e = parsemakesyntax('$(shell ls $(wildcard $(DIR)/*))', None)
        fns = calls(e)
        self.assertEqual(len(fns), 1)
        self.assertIsInstance(fns[0], ShellFunction)

        inner = calls(fns[0][0])
        self.assertEqual(len(inner), 1)
        self.assertIsInstance(inner[0], WildcardFunction)
        self.assertIsInstance(calls(inner[0][0])[0], VariableRef)

    def test_unterminated(self):
        self.assertRaises(errors.DataError, parsemakesyntax, '$(FOO', None)
        self.assertRaises(errors.DataError, parsemakesyntax, '$(shell echo', None)

    def test_trailing_dollar(self):
        e = parsemakesyntax('abc$', None)
        self.assertEqual(e.s, 'abc')

class ResolveTest(unittest.TestCase):
    def setUp(self):
        self.ev = Evaluator(env={})

    def test_forms(self):
        self.ev.assign('A', OP_EQ, 'x')
        self.assertEqual(self.ev.eval_expression('$(A) $$ ${A} $A'), 'x $ x x')

    def test_nested_name(self):
        self.ev.assign('A', OP_EQ, 'x')
        self.ev.assign('N', OP_EQ, 'A')
        self.assertEqual(self.ev.eval_expression('$($(N))'), 'x')

    def test_parens_in_value(self):
        self.assertEqual(self.ev.eval_expression('(a) {b}'), '(a) {b}')

    def test_substitution_suffix(self):
        self.ev.assign('SRCS', OP_COLON_EQ, 'a.c b.c c.h')
        self.assertEqual(self.ev.eval_expression('$(SRCS:.c=.o)'), 'a.o b.o c.h')

    def test_substitution_pattern(self):
        self.ev.assign('SRCS', OP_COLON_EQ, 'a.c sub/b.c')
        self.assertEqual(self.ev.eval_expression('$(SRCS:%.c=obj/%.o)'), 'obj/a.o obj/sub/b.o')

    def test_value(self):
        self.ev.assign('V', OP_EQ, '$(UNSET) raw')
        self.assertEqual(self.ev.eval_expression('$(value V)'), '$(UNSET) raw')

    def test_origin(self):
        ev = Evaluator(env={'FOO': 'bar'})
        ev.assign('MINE', OP_EQ, 'x')
        self.assertEqual(ev.eval_expression('$(origin FOO)'), 'environment')
        self.assertEqual(ev.eval_expression('$(origin MINE)'), 'file')
        self.assertEqual(ev.eval_expression('$(origin NOPE)'), 'undefined')
        self.assertEqual(ev.eval_expression('$(origin SHELL)'), 'default')

    def test_flavor(self):
        self.ev.assign('R', OP_EQ, 'x')
        self.ev.assign('S', OP_COLON_EQ, 'x')
        self.assertEqual(self.ev.eval_expression('$(flavor R) $(flavor S) $(flavor NOPE)'),
                         'recursive simple undefined')

    def test_error(self):
        with self.assertRaises(errors.DataError) as cm:
            self.ev.eval_expression('$(error went wrong)')
        self.assertEqual(cm.exception.msg, 'went wrong')

    def test_warning(self):
        with self.assertLogs('pykati.data', level='WARNING') as cm:
            self.assertEqual(self.ev.eval_expression('a$(warning careful)b'), 'ab')
        self.assertIn('careful', cm.output[0])

class ShellTest(unittest.TestCase):
    def test_shell(self):
        ev = Evaluator(env={'PATH': os.environ.get('PATH', '/bin:/usr/bin')})
        self.assertEqual(ev.eval_expression("$(shell printf 'a\\nb\\n')"), 'a b')

        results = list(ev.commandresults)
        self.assertEqual(len(results), 1)
        cr = results[0]
        self.assertEqual(cr.op, process.OP_SHELL)
        self.assertEqual(cr.shell, '/bin/sh')
        self.assertEqual(cr.shellflag, '-c')
        self.assertEqual(cr.cmd, "printf 'a\\nb\\n'")
        self.assertEqual(cr.result, 'a b')

    def test_avoid_io_in_command(self):
        ev = Evaluator(env={})
        ev.avoid_io = True
        ev.evaluating_command = True
        self.assertEqual(ev.eval_expression('$(shell date +%s)'), '$(date +%s)')
        self.assertEqual(len(ev.commandresults), 0)

class WildcardTest(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        for name in ('b.c', 'a.c', 'x.h', '.hidden.c'):
            with open(os.path.join(self.tmpdir, name), 'w'):
                pass
        os.mkdir(os.path.join(self.tmpdir, 'sub'))
        with open(os.path.join(self.tmpdir, 'sub', 'c.c'), 'w'):
            pass

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_wildcard(self):
        ev = Evaluator(env={}, workdir=self.tmpdir)
        self.assertEqual(ev.eval_expression('$(wildcard *.c)'), 'a.c b.c')
        self.assertEqual(ev.eval_expression('$(wildcard */*.c x.h missing.h)'), 'sub/c.c x.h')
        self.assertEqual(ev.globcache.items(), [('*.c', ['a.c', 'b.c']),
                                                ('*/*.c', ['sub/c.c']),
                                                ('x.h', ['x.h']),
                                                ('missing.h', [])])

    def test_cached(self):
        ev = Evaluator(env={}, workdir=self.tmpdir)
        self.assertEqual(ev.eval_expression('$(wildcard *.h)'), 'x.h')
        with open(os.path.join(self.tmpdir, 'y.h'), 'w'):
            pass
        self.assertEqual(ev.eval_expression('$(wildcard *.h)'), 'x.h')
        self.assertEqual(len(ev.globcache), 1)

if __name__ == '__main__':
    unittest.main()
