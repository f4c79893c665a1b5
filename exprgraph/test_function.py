#!/usr/bin/env python3
r"""@package exprgraph.test_function

Tests of the graph driver: evaluation, sparsity propagation and derivatives.
"""

import unittest
import sys

import numpy as np
from scipy import sparse

from testutils import GraphTestCase, slowtest
from .common import StructureError, DifferentiationError, BVEC_T, bvec_zeros
from .sparsity import Sparsity
from .mx import MX, reshape, sin, cos
from .node import MXNode
from .function import GraphFunction, topological_sort


class _Opaque(MXNode):
    r"""Copy of its argument that cannot be differentiated."""
    op = 99

    def __init__(self, x):
        super(_Opaque, self).__init__()
        self.set_dependencies(x)
        self.set_sparsity(x.sparsity)

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        outputs[0][:] = inputs[0]

    def propagate_sparsity(self, inputs, outputs, fwd):
        if fwd:
            outputs[0][:] = inputs[0]
        else:
            inputs[0] |= outputs[0]
            outputs[0][:] = 0

    def generate_operation(self, stream, arg, res, gen):
        for k in range(self.nnz):
            gen.assign(stream, "%s[%d]" % (res[0], k), "%s[%d]" % (arg[0], k))

    def print_part(self, part):
        return "opaque(" if part == 0 else ")"


class _Greedy(_Opaque):
    r"""Node that forgets to consume its adjoint seed."""
    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        for d in range(len(adj_seed)):
            adj_sens[d][0].add_to_sum(adj_seed[d][0])


def _jac_triplets(f, fwd):
    r"""Jacobian entries of output 0 w.r.t. input 0 using one bit per entry."""
    n_in, n_out = f.input(0).nnz, f.output(0).nnz
    entries = set()
    if fwd:
        for j in range(n_in):
            seed = bvec_zeros(n_in)
            seed[j] = 1
            res = f.propagate_sparsity([seed], fwd=True)[0]
            entries.update((int(i), j) for i in np.nonzero(res)[0])
    else:
        for i in range(n_out):
            seed = bvec_zeros(n_out)
            seed[i] = 1
            res = f.propagate_sparsity([seed], fwd=False)[0]
            entries.update((i, int(j)) for j in np.nonzero(res)[0])
    return entries


class TestConstruction(GraphTestCase):
    def test_invalid_inputs(self):
        x = MX.sym('x', 2)
        with self.assertRaises(ValueError):
            GraphFunction([x + 1.0], [x])
        with self.assertRaises(ValueError):
            GraphFunction([x, x], [x])
        with self.assertRaises(ValueError):
            GraphFunction([x], [MX()])

    def test_free_symbol(self):
        x, z = MX.sym('x', 2), MX.sym('z', 2)
        with self.assertRaises(ValueError) as cm:
            GraphFunction([x], [x + z])
        self.assertIn('z', str(cm.exception))

    def test_topological_sort(self):
        x = MX.sym('x', 2)
        a = sin(x)
        b = a * a + cos(a)
        order = topological_sort([b.node])
        self.assertEqual(len(order), 5)
        self.assertIs(order[0], x.node)
        self.assertIs(order[-1], b.node)
        pos = dict((id(n), k) for k, n in enumerate(order))
        for n in order:
            for d in n.deps:
                self.assertLess(pos[id(d)], pos[id(n)])

    def test_shared_nodes(self):
        x = MX.sym('x', 2)
        a = sin(x)
        f = GraphFunction([x], [a, a * a])
        self.assertEqual(len(f.nodes), 3)
        self.assertEqual(f.n_in, 1)
        self.assertEqual(f.n_out, 2)

    @slowtest
    def test_deep_graph(self):
        x = MX.sym('x', 1)
        y = x
        for _ in range(5000):
            y = y + 1.0
        f = GraphFunction([x], [y])
        self.assertBufferEqual(f.evaluate(0.5)[0], [5000.5])

    def test_long_chain(self):
        x = MX.sym('x', 1)
        y = x
        for _ in range(1500):
            y = y * 1.0
        f = GraphFunction([x], [y])
        self.assertBufferEqual(f.evaluate(0.5)[0], [0.5])


class TestEvaluate(GraphTestCase):
    def test_arguments(self):
        x = MX.sym('x', Sparsity.from_triplets(2, 2, [0, 1], [0, 1]))
        f = GraphFunction([x], [x * 2.0])
        self.assertBufferEqual(f.evaluate(1.5)[0], [3, 3])
        self.assertBufferEqual(f.evaluate([1, 2])[0], [2, 4])
        self.assertBufferEqual(f.evaluate([[1, 7], [7, 2]])[0], [2, 4])
        self.assertBufferEqual(f.evaluate(sparse.eye(2) * 3.0)[0], [6, 6])
        with self.assertRaises(ValueError):
            f.evaluate([1, 2, 3])
        with self.assertRaises(TypeError):
            f.evaluate()

    def test_call(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [x * 2.0])
        self.assertTrue(np.array_equal(f([1, 2]), [[2], [4]]))
        g = GraphFunction([x], [x, reshape(x, 1, 2)])
        res = g([1, 2])
        self.assertEqual(len(res), 2)
        self.assertTrue(np.array_equal(res[1], [[1, 2]]))

    def test_inplace_option(self):
        x = MX.sym('x', 2, 2)
        y = sin(reshape(x, 4, 1))
        f = GraphFunction([x], [y])
        g = GraphFunction([x], [y], inplace=False)
        self.assertEqual(f.n_work, 2)
        self.assertEqual(g.n_work, 3)
        values = [0.1, 0.2, 0.3, 0.4]
        self.assertListEqual(list(f.evaluate(values)[0]), list(g.evaluate(values)[0]))

    def test_repr(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [sin(x)], name='g')
        self.assertEqual(repr(f), "<GraphFunction g: 1 -> 1, 2 nodes>")


class TestSparsityPropagation(GraphTestCase):
    def _function(self):
        x = MX.sym('x', 3, 2)
        y = reshape(x, 2, 3)[:, 1:] * sin(x[0:2, :])
        return GraphFunction([x], [reshape(y, 4, 1)])

    def test_forward_matches_reverse(self):
        f = self._function()
        fwd = _jac_triplets(f, True)
        rev = _jac_triplets(f, False)
        self.assertSetEqual(fwd, rev)
        rows, cols = f.jac_sparsity().triplets()
        self.assertSetEqual(set(zip(rows.tolist(), cols.tolist())), fwd)

    def test_jac_sparsity(self):
        f = self._function()
        # Outputs are x2*x0, x3*x1, x4*x3 and x5*x4 (by nonzero index).
        expected = Sparsity.from_triplets(4, 6, [0, 0, 1, 1, 2, 2, 3, 3],
                                          [0, 2, 1, 3, 3, 4, 4, 5])
        self.assertEqual(f.jac_sparsity(), expected)

    def test_many_directions(self):
        x = MX.sym('x', 70)
        f = GraphFunction([x], [sin(x)])
        self.assertEqual(f.jac_sparsity(),
                         Sparsity.from_triplets(70, 70, range(70), range(70)))
        g = GraphFunction([x], [x[0:3] * x[67:70]])
        self.assertEqual(g.jac_sparsity(),
                         Sparsity.from_triplets(3, 70, [0, 1, 2, 0, 1, 2],
                                                [0, 1, 2, 67, 68, 69]))

    def test_reverse_clears_outputs(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [sin(x) + x], inplace=False)
        seed = np.array([1, 2], dtype=BVEC_T)
        res = f.propagate_sparsity([seed], fwd=False)[0]
        self.assertListEqual(list(res), [1, 2])
        self.assertListEqual(list(seed), [1, 2])


class TestDerivatives(GraphTestCase):
    def test_adjoint_accumulation(self):
        x = MX.sym('x', 2)
        z = sin(x) + x * x + x
        f = GraphFunction([x], [z])
        [[adj]] = f.reverse([[MX.ones(2, 1)]])
        g = GraphFunction([x], [adj])
        values = np.array([0.5, 2.0])
        self.assertListAlmostEqual(g.evaluate(values)[0],
                                   np.cos(values) + 2 * values + 1)

    def test_output_order(self):
        x = MX.sym('x', 2)
        a, b = sin(x), x * x
        t1, t2 = MX.sym('t1', 2), MX.sym('t2', 2)
        [[adj1]] = GraphFunction([x], [a, b]).reverse([[t1, t2]])
        [[adj2]] = GraphFunction([x], [b, a]).reverse([[t2, t1]])
        g = GraphFunction([x, t1, t2], [adj1, adj2])
        res = g.evaluate([0.5, 2.0], [1.0, -1.0], [3.0, 0.25])
        self.assertListAlmostEqual(res[0], res[1])
        self.assertListAlmostEqual(res[0], [np.cos(0.5) + 3.0, -np.cos(2.0) + 1.0])

    def test_directions(self):
        x, y = MX.sym('x', 2), MX.sym('y', 2)
        f = GraphFunction([x, y], [x * y])
        s = MX.sym('s', 2)
        adj = f.reverse([[s], [None]])
        self.assertEqual(len(adj), 2)
        self.assertTrue(adj[1][0].is_zero())
        self.assertTrue(adj[1][1].is_zero())
        fwd = f.forward([[s, None], [None, s]])
        g = GraphFunction([x, y, s], [adj[0][0], adj[0][1], fwd[0][0], fwd[1][0]])
        res = g.evaluate([1, 2], [3, 4], [5, 6])
        self.assertBufferEqual(res[0], [15, 24])
        self.assertBufferEqual(res[1], [5, 12])
        self.assertBufferEqual(res[2], [15, 24])
        self.assertBufferEqual(res[3], [5, 12])

    def test_unused_input(self):
        x, y = MX.sym('x', 2), MX.sym('y', 3)
        f = GraphFunction([x, y], [sin(x)])
        [[ax, ay]] = f.reverse([[MX.ones(2, 1)]])
        self.assertTrue(ay.is_zero())
        self.assertEqual(ay.sparsity, y.sparsity)
        [[fy]] = f.forward([[None, MX.ones(3, 1)]])
        self.assertTrue(fy.is_zero())

    def test_identity_output(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [x])
        s = MX.sym('s', 2)
        [[adj]] = f.reverse([[s]])
        self.assertIs(adj.node, s.node)
        [[fwd]] = f.forward([[s]])
        self.assertIs(fwd.node, s.node)

    def test_second_order(self):
        x = MX.sym('x', 1)
        f = GraphFunction([x], [sin(x) * x])
        [[d1]] = f.forward([[MX.ones(1, 1)]])
        [[d2]] = GraphFunction([x], [d1]).forward([[MX.ones(1, 1)]])
        g = GraphFunction([x], [d2])
        v = 0.7
        self.assertAlmostEqual(g.evaluate(v)[0][0], 2 * np.cos(v) - v * np.sin(v))

    def test_seed_checks(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [sin(x)])
        with self.assertRaises(StructureError):
            f.forward([[MX.ones(3, 1)]])
        with self.assertRaises(StructureError):
            f.reverse([[MX.ones(1, 2)]])
        with self.assertRaises(TypeError):
            f.forward([[1.0]])
        with self.assertRaises(TypeError):
            f.reverse([[MX.ones(2, 1), MX.ones(2, 1)]])

    def test_not_differentiable(self):
        x = MX.sym('x', 2)
        y = MX.create(_Opaque(x))
        f = GraphFunction([x], [sin(y)])
        self.assertBufferEqual(f.evaluate([0, 0])[0], [0, 0])
        with self.assertRaises(DifferentiationError):
            f.forward([[MX.ones(2, 1)]])
        with self.assertRaises(DifferentiationError):
            f.reverse([[MX.ones(2, 1)]])
        self.assertEqual(f.jac_sparsity(), Sparsity.from_triplets(2, 2, [0, 1], [0, 1]))

    def test_seed_not_consumed(self):
        x = MX.sym('x', 2)
        f = GraphFunction([x], [MX.create(_Greedy(x))])
        with self.assertRaises(RuntimeError):
            f.reverse([[MX.ones(2, 1)]])


def run_tests():
    suite = unittest.TestLoader().loadTestsFromModule(sys.modules[__name__])
    return len(unittest.TextTestRunner(verbosity=2).run(suite).failures)


if __name__ == '__main__':
    unittest.main()
