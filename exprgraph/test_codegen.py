#!/usr/bin/env python3

import unittest
import sys

import numpy as np

from testutils import GraphTestCase
from .sparsity import Sparsity
from .mx import MX, reshape, sub_assign, sin, exp, log, sqrt
from .function import GraphFunction
from .codegen import CodeGenerator


def _compile(code, name='f'):
    namespace = dict()
    exec(code, namespace)
    return namespace[name]


class TestPython(GraphTestCase):
    def _compare(self, fcn, *args):
        code = fcn.generate('python')
        func = _compile(code, fcn.name)
        res = [[0.0] * fcn.output(i).nnz for i in range(fcn.n_out)]
        func(*([list(map(float, a)) for a in args] + res))
        expected = fcn.evaluate(*args)
        for r, e in zip(res, expected):
            self.assertListAlmostEqual(r, e)
        return code

    def test_structural_ops(self):
        x = MX.sym('x', 2, 3)
        y = sin(reshape(x, 3, 2)[1:3, :]) * 2.0
        f = GraphFunction([x], [y])
        code = self._compare(f, [0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
        self.assertTrue(code.startswith("from numpy import float64, sin\n"))
        self.assertIn("def f(x0, r0):\n", code)

    def test_multiple(self):
        x, y = MX.sym('x', 3), MX.sym('y', 2)
        z = sub_assign(x, exp(y) - sqrt(x[0:2]), slice(1, None), 0)
        f = GraphFunction([x, y], [z, x[::-1] / 4.0], name='multi')
        code = self._compare(f, [1.0, 4.0, 9.0], [0.5, -0.5])
        self.assertIn("def multi(x0, x1, r0, r1):\n", code)
        self.assertIn("from numpy import exp, float64, sqrt\n", code)

    def test_derivative(self):
        x = MX.sym('x', 3)
        f = GraphFunction([x], [sin(x) * x])
        [[adj]] = f.reverse([[MX.ones(3, 1)]])
        self._compare(GraphFunction([x], [adj], name='grad'), [0.2, 0.4, 0.8])

    def test_empty(self):
        x = MX.sym('x', Sparsity.sparse(2, 2))
        f = GraphFunction([x], [x])
        code = f.generate('python')
        self.assertEqual(code, "def f(x0, r0):\n    pass\n")
        _compile(code)([], [])

    def test_identity(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [reshape(x, 1, 2)])
        code = f.generate('python', name='g')
        self.assertEqual(code, "from numpy import float64\n\n\n"
                               "def g(x0, r0):\n"
                               "    x0 = [float64(v) for v in x0]\n"
                               "    r0[0] = x0[0]\n    r0[1] = x0[1]\n")

    def test_division_by_zero(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [1.0 / x, MX.constant([1.0, -1.0]) / MX.zeros(2, 1)])
        func = _compile(f.generate('python'))
        res = [[0.0, 0.0], [0.0, 0.0]]
        with np.errstate(divide='ignore'):
            expected = f.evaluate([0.0, 2.0])
            func([0.0, 2.0], *res)
        self.assertListEqual(list(expected[0]), [np.inf, 0.5])
        self.assertListEqual(res[0], [np.inf, 0.5])
        self.assertListEqual(res[1], [np.inf, -np.inf])

    def test_outside_domain(self):
        x = MX.sym('x', 3)
        f = GraphFunction([x], [log(x), sqrt(x)])
        func = _compile(f.generate('python'))
        res = [[0.0] * 3, [0.0] * 3]
        with np.errstate(divide='ignore', invalid='ignore'):
            expected = f.evaluate([-1.0, 0.0, 1.0])
            func([-1.0, 0.0, 1.0], *res)
        for r, e in zip(res, expected):
            self.assertTrue(np.array_equal(r, e, equal_nan=True))
        self.assertTrue(np.isnan(res[0][0]))
        self.assertEqual(res[0][1], -np.inf)


class TestC(GraphTestCase):
    def test_structure(self):
        x = MX.sym('x', 2, 3)
        f = GraphFunction([x], [sin(reshape(x, 3, 2)[1:3, :])])
        code = f.generate()
        lines = code.splitlines()
        self.assertEqual(lines[0], "#include <math.h>")
        self.assertIn("void f(const double* x0, double* r0) {", lines)
        self.assertEqual(lines[-1], "}")
        body = lines[lines.index("void f(const double* x0, double* r0) {") + 1:-1]
        self.assertTrue(all(l.startswith("  ") and l.endswith(";") for l in body))
        self.assertIn("  w1[0] = x0[1];", body)
        self.assertIn("  w2[0] = sin(w1[0]);", body)
        self.assertIn("  r0[3] = w2[3];", body)
        self.assertEqual(body[0], "  double w1[4];")

    def test_no_math(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [x * x])
        code = CodeGenerator(language='c', real_t='float').generate(f)
        self.assertNotIn("#include", code)
        self.assertTrue(code.startswith("void f(const float* x0, float* r0) {\n"))
        self.assertIn("  w1[0] = x0[0] * x0[0];\n", code)

    def test_special_constants(self):
        x = MX.sym('x', 3)
        f = GraphFunction([x], [x + MX.constant([np.inf, -np.inf, 1.5])])
        code = f.generate('c')
        self.assertIn("#include <math.h>", code)
        self.assertIn("= INFINITY;", code)
        self.assertIn("= -INFINITY;", code)
        self.assertIn("= 1.5;", code)


class TestGenerator(GraphTestCase):
    def test_options(self):
        with self.assertRaises(ValueError):
            CodeGenerator(language='fortran')
        x = MX.sym('x', 1)
        f = GraphFunction([x], [x])
        with self.assertRaises(ValueError):
            f.generate('c', name='not valid')
        self.assertIn("\tr0[0] = x0[0];\n", f.generate('c', indent='\t'))

    def test_constants(self):
        c = CodeGenerator('c')
        self.assertEqual(c.constant(2), "2.0")
        self.assertEqual(c.constant(-0.25), "-0.25")
        self.assertEqual(c.constant(float('nan')), "NAN")
        py = CodeGenerator('python')
        self.assertEqual(py.constant(float('inf')), "float64('inf')")
        self.assertEqual(py.constant(-float('inf')), "float64('-inf')")
        self.assertEqual(py.constant(0.5), "float64(0.5)")
        self.assertTrue(np.isnan(eval(py.constant(float('nan')), {'float64': np.float64})))

    def test_python_special_constants(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [x * MX.constant([np.inf, 2.0])])
        func = _compile(f.generate('python'))
        res = [0.0, 0.0]
        func([1.0, 3.0], res)
        self.assertEqual(res, [float('inf'), 6.0])


def run_tests():
    suite = unittest.TestLoader().loadTestsFromModule(sys.modules[__name__])
    return len(unittest.TextTestRunner(verbosity=2).run(suite).failures)


if __name__ == '__main__':
    unittest.main()
