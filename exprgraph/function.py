r"""@package exprgraph.function

Graph functions: evaluation and differentiation of a whole expression graph.

A GraphFunction is defined by a list of free symbols (the inputs) and a list
of expressions (the outputs). On construction, the nodes needed to compute
the outputs are sorted topologically and each node is assigned a work buffer.
This *algorithm* is then reused for all sweeps:

    * evaluate() runs over the algorithm in order using floating point or
      `mpmath` buffers, evaluate_symbolic() does the same with SymPy elements,
    * propagate_sparsity() pushes dependency bits forward or backward, which
      jac_sparsity() uses to compute the Jacobian's sparsity pattern,
    * forward() and reverse() build new graphs for forward and adjoint
      directional derivatives,
    * generate() produces source code via codegen.CodeGenerator.

Nodes that support it (e.g. reshape.Reshape) share the work buffer of their
dependency when `inplace=True`.

The function object stores no state of a sweep. Each call allocates its own
buffers, so the same function may be evaluated concurrently.

@b Examples

~~~.py
x = MX.sym('x', 4)
f = GraphFunction([x], [x[1:3]])
f.evaluate([10, 20, 30, 40])                # [array([20., 30.])]
s = MX.sym('s', 2)
(adj_x,), = f.reverse([[s]])
g = GraphFunction([x, s], [adj_x])
g.evaluate([10, 20, 30, 40], [1, 1])        # [array([0., 1., 1., 0.])]
~~~
"""

from contextlib import contextmanager
import logging
import numbers

import numpy as np
import sympy as sp
from scipy import sparse
from mpmath import mp

from .common import NUMERIC, MPMATH, SYMBOLIC, BVEC_T, BVEC_SIZE, bvec_zeros
from .common import StructureError
from .mx import MX
from .sparsity import Sparsity


__all__ = [
    "GraphFunction",
]


logger = logging.getLogger(__name__)


class _AlgEl(object):
    r"""One step of the algorithm: a node with its buffer indices."""
    def __init__(self, node, arg, res):
        ## The node to evaluate.
        self.node = node
        ## Work buffer index of each dependency.
        self.arg = arg
        ## Work buffer index of the output.
        self.res = res

    def __repr__(self):
        return "<%s %s -> %d>" % (type(self.node).__name__, self.arg, self.res)


def topological_sort(roots):
    r"""Return all nodes reachable from `roots`, dependencies first.

    The sort is iterative (no recursion limit for deep graphs) and each node
    appears exactly once, even when shared by several consumers.
    """
    order = []
    done = set()
    for root in roots:
        stack = [(root, 0)]
        while stack:
            node, i = stack.pop()
            if i == 0 and id(node) in done:
                continue
            if i < node.n_dep:
                stack.append((node, i + 1))
                dep = node.deps[i]
                if id(dep) not in done:
                    stack.append((dep, 0))
            else:
                done.add(id(node))
                order.append(node)
    return order


@contextmanager
def _precision(use_mp, dps):
    if use_mp and dps is not None:
        with mp.workdps(dps):
            yield
    else:
        yield


class GraphFunction(object):
    r"""Function mapping free symbols to expressions of them."""

    def __init__(self, inputs, outputs, name='f', inplace=True):
        r"""Create the function and its evaluation algorithm.

        Args:
            inputs: List of distinct free symbols (created via mx.MX.sym()).
            outputs: List of MX expressions of the inputs.
            name:   Name of the function (used e.g. in generated code).
            inplace: Whether nodes supporting it may share their
                    dependency's buffer.

        Raises:
            ValueError: If an input is not a symbol, is given twice, or an
                output depends on a symbol not among the inputs.
        """
        if isinstance(inputs, MX):
            inputs = [inputs]
        if isinstance(outputs, MX):
            outputs = [outputs]
        for x in inputs:
            if not x.is_symbolic():
                raise ValueError("Function inputs must be symbols, got %s." % x)
        if len(set(id(x.node) for x in inputs)) != len(inputs):
            raise ValueError("Function inputs must be distinct.")
        for y in outputs:
            if y.is_empty():
                raise ValueError("Function outputs cannot be empty.")
        ## Name of the function.
        self.name = name
        self._inputs = [MX(x.node) for x in inputs]
        self._outputs = [MX(y.node) for y in outputs]
        roots = [x.node for x in self._inputs] + [y.node for y in self._outputs]
        nodes = topological_sort(roots)
        input_ids = set(id(x.node) for x in self._inputs)
        free = [n.name for n in nodes if n.is_symbolic() and id(n) not in input_ids]
        if free:
            raise ValueError("Free symbols not among the inputs: %s"
                             % ", ".join(free))
        self._nodes = nodes
        self._allocate(inplace)
        logger.debug("Function '%s': %d nodes, %d work buffers.",
                     name, len(nodes), self.n_work)

    def _allocate(self, inplace):
        work = dict()
        work_nnz = []
        alg = []
        for node in self._nodes:
            arg = [work[id(d)] for d in node.deps]
            if inplace and node.supports_inplace:
                res = arg[0]
            else:
                res = len(work_nnz)
                work_nnz.append(node.nnz)
            work[id(node)] = res
            alg.append(_AlgEl(node, arg, res))
        self._node_work = work
        ## Size of each work buffer.
        self.work_nnz = work_nnz
        ## The topologically sorted list of algorithm steps.
        self.algorithm = alg
        ## Work buffer index of each input.
        self.input_work = [work[id(x.node)] for x in self._inputs]
        ## Work buffer index of each output.
        self.output_work = [work[id(y.node)] for y in self._outputs]
        ntmp = [node.n_tmp() for node in self._nodes] or [(0, 0)]
        self._n_itmp = max(n[0] for n in ntmp)
        self._n_rtmp = max(n[1] for n in ntmp)

    @property
    def n_in(self):
        return len(self._inputs)

    @property
    def n_out(self):
        return len(self._outputs)

    @property
    def n_work(self):
        r"""Number of work buffers."""
        return len(self.work_nnz)

    @property
    def nodes(self):
        r"""Nodes of the function in topological order."""
        return list(self._nodes)

    def input(self, i=0):
        return MX(self._inputs[i].node)

    def output(self, i=0):
        return MX(self._outputs[i].node)

    def _check_nargs(self, args, expected, what):
        if len(args) != expected:
            raise TypeError("Function '%s' expects %d %s, got %d."
                            % (self.name, expected, what, len(args)))

    def _nonzeros(self, sparsity, value, ctx):
        r"""Convert a user supplied value to a buffer of nonzeros."""
        if isinstance(value, (numbers.Number, sp.Basic)) and not isinstance(value, bool):
            return ctx.asbuffer([value] * sparsity.nnz)
        if sparse.issparse(value):
            value = value.toarray()
        if not isinstance(value, np.ndarray):
            value = np.array(value, dtype=object if ctx.dtype is object else float)
        if value.ndim == 1 and value.size == sparsity.nnz:
            return ctx.asbuffer(value)
        if value.ndim <= 2 and value.size == sparsity.numel:
            return ctx.asbuffer(sparsity.nonzeros(value))
        raise ValueError("Cannot use a value of shape %s for an input with "
                         "%r." % (value.shape, sparsity))

    def _run(self, args, ctx, method):
        self._check_nargs(args, self.n_in, "arguments")
        work = [ctx.empty(n) for n in self.work_nnz]
        for x, idx, arg in zip(self._inputs, self.input_work, args):
            work[idx][:] = self._nonzeros(x.sparsity, arg, ctx)
        itmp = np.zeros(self._n_itmp, dtype=np.int64)
        rtmp = ctx.empty(self._n_rtmp)
        for el in self.algorithm:
            if el.node.is_symbolic():
                continue
            getattr(el.node, method)([work[a] for a in el.arg], [work[el.res]],
                                     itmp, rtmp)
        return [work[idx].copy() for idx in self.output_work]

    def evaluate(self, *args, use_mp=False, dps=None):
        r"""Evaluate numerically and return the nonzeros of each output.

        Args:
            *args:  One value per input: a number (used for all nonzeros), a
                    vector of nonzeros, or a dense (or SciPy sparse) matrix.
            use_mp: Whether to compute using `mpmath` arbitrary precision
                    numbers. Default is `False`, i.e. floating point.
            dps:    Decimal places used for `mpmath` computations.

        @return List of nonzero buffers, one per output.
        """
        if use_mp:
            with _precision(use_mp, dps):
                return self._run(args, MPMATH, 'evaluate_mp')
        return self._run(args, NUMERIC, 'evaluate_d')

    def __call__(self, *args, **kwargs):
        r"""Evaluate and return dense matrices.

        A single output is returned as is, several outputs as a list.
        """
        res = self.evaluate(*args, **kwargs)
        dense = [y.sparsity.densify(nz) for y, nz in zip(self._outputs, res)]
        return dense[0] if len(dense) == 1 else dense

    def symbolic_input(self, i, prefix=None):
        r"""Create one SymPy symbol per nonzero of the i'th input.

        The symbols are named `<prefix>_<k>`, where `prefix` defaults to the
        name of the input symbol.
        """
        x = self._inputs[i]
        prefix = x.name if prefix is None else prefix
        return [sp.Symbol("%s_%d" % (prefix, k)) for k in range(x.nnz)]

    def evaluate_symbolic(self, *args):
        r"""Evaluate using SymPy expressions as elements.

        Args:
            *args:  Optional; one entry per input, either a sequence of SymPy
                    expressions (one per nonzero) or a string used as prefix
                    for newly created symbols. Inputs without an argument get
                    symbols named after the input (see symbolic_input()).

        @return List of object arrays of SymPy expressions, one per output.
        """
        args = list(args) + [None] * (self.n_in - len(args))
        values = []
        for i, arg in enumerate(args):
            if arg is None or isinstance(arg, str):
                arg = self.symbolic_input(i, prefix=arg)
            values.append(arg)
        return self._run(values, SYMBOLIC, 'evaluate_sx')

    def propagate_sparsity(self, seeds, fwd=True):
        r"""Propagate dependency bits through the function.

        Args:
            seeds:  For `fwd=True`, one bit buffer (array of `BVEC_T`) per
                    input, otherwise one per output.
            fwd:    Direction of the propagation.

        @return One bit buffer per output (forward) or per input (reverse).
            Bit `b` of entry `k` of a result is set if the entry depends on
            (forward) or influences (reverse) any entry seeded with bit `b`.
        """
        if fwd:
            self._check_nargs(seeds, self.n_in, "seeds")
            seed_work, res_work = self.input_work, self.output_work
        else:
            self._check_nargs(seeds, self.n_out, "seeds")
            seed_work, res_work = self.output_work, self.input_work
        work = [bvec_zeros(n) for n in self.work_nnz]
        for idx, seed in zip(seed_work, seeds):
            work[idx] |= np.asarray(seed, dtype=BVEC_T)
        steps = self.algorithm if fwd else reversed(self.algorithm)
        for el in steps:
            if el.node.is_symbolic():
                continue
            el.node.propagate_sparsity([work[a] for a in el.arg],
                                       [work[el.res]], fwd)
        return [work[idx].copy() for idx in res_work]

    def jac_sparsity(self, iind=0, oind=0):
        r"""Sparsity of the Jacobian of output `oind` w.r.t. input `iind`.

        Rows correspond to the output's nonzeros and columns to the input's
        nonzeros. Up to 64 directions are propagated per sweep, in forward
        mode if the input has fewer nonzeros than the output and in reverse
        mode otherwise.
        """
        n_in = self._inputs[iind].nnz
        n_out = self._outputs[oind].nnz
        fwd = n_in <= n_out
        n_seed = n_in if fwd else n_out
        rows = []
        cols = []
        for offset in range(0, n_seed, BVEC_SIZE):
            ndir = min(BVEC_SIZE, n_seed - offset)
            bits = np.left_shift(BVEC_T(1), np.arange(ndir, dtype=BVEC_T))
            if fwd:
                seeds = [bvec_zeros(x.nnz) for x in self._inputs]
                seeds[iind][offset:offset+ndir] = bits
                res = self.propagate_sparsity(seeds, fwd=True)[oind]
            else:
                seeds = [bvec_zeros(y.nnz) for y in self._outputs]
                seeds[oind][offset:offset+ndir] = bits
                res = self.propagate_sparsity(seeds, fwd=False)[iind]
            for b in range(ndir):
                hits = np.nonzero(res & bits[b])[0]
                if fwd:
                    rows.extend(hits)
                    cols.extend([offset + b] * len(hits))
                else:
                    rows.extend([offset + b] * len(hits))
                    cols.extend(hits)
        logger.debug("Jacobian sparsity of '%s' (%d, %d) computed in %s mode.",
                     self.name, oind, iind, "forward" if fwd else "reverse")
        return Sparsity.from_triplets(n_out, n_in, rows, cols)

    def _check_seed(self, seed, x, kind):
        if seed is None:
            return MX.zeros(x.sparsity)
        if not isinstance(seed, MX) or seed.is_empty():
            raise TypeError("%s seeds must be non-empty MX, got %r."
                            % (kind, seed))
        if seed.sparsity != x.sparsity:
            raise StructureError("%s seed has sparsity %r, expected %r."
                                 % (kind, seed.sparsity, x.sparsity))
        return MX(seed.node)

    def forward(self, fwd_seeds):
        r"""Build the graphs of forward directional derivatives.

        Args:
            fwd_seeds: List of directions. Each direction is a list of one
                    seed per input, which is an MX with the input's sparsity
                    or `None` for zero.

        @return List of directions, each a list of one MX per output.
        """
        ndir = len(fwd_seeds)
        sens = dict()
        for x in self._inputs:
            sens[id(x.node)] = []
        for d, seeds in enumerate(fwd_seeds):
            self._check_nargs(seeds, self.n_in, "forward seeds")
            for x, seed in zip(self._inputs, seeds):
                sens[id(x.node)].append(self._check_seed(seed, x, "Forward"))
        for el in self.algorithm:
            node = el.node
            if node.is_symbolic():
                continue
            fseed = [[sens[id(dep)][d] for dep in node.deps] for d in range(ndir)]
            fsens = [[MX()] for d in range(ndir)]
            node.evaluate_mx([MX(dep) for dep in node.deps], [MX(node)],
                             fseed, fsens, [], [], True)
            sens[id(node)] = [fsens[d][0] for d in range(ndir)]
        logger.debug("Forward sweep of '%s' in %d directions.", self.name, ndir)
        return [[MX(sens[id(y.node)][d].node) for y in self._outputs]
                for d in range(ndir)]

    def reverse(self, adj_seeds):
        r"""Build the graphs of adjoint directional derivatives.

        Every node's adjoint is the sum of the contributions of all of its
        consumers. The seeds of a node are consumed (and its slots emptied)
        when the node is processed.

        Args:
            adj_seeds: List of directions. Each direction is a list of one
                    seed per output, which is an MX with the output's
                    sparsity or `None` for zero.

        @return List of directions, each a list of one MX per input.
        """
        ndir = len(adj_seeds)
        slots = dict((id(node), [MX() for d in range(ndir)])
                     for node in self._nodes)
        for d, seeds in enumerate(adj_seeds):
            self._check_nargs(seeds, self.n_out, "adjoint seeds")
            for y, seed in zip(self._outputs, seeds):
                if seed is not None:
                    seed = self._check_seed(seed, y, "Adjoint")
                    slots[id(y.node)][d].add_to_sum(seed)
        for el in reversed(self.algorithm):
            node = el.node
            if node.is_symbolic():
                continue
            own = slots[id(node)]
            dirs = [d for d in range(ndir) if not own[d].is_empty()]
            if not dirs:
                continue
            aseed = [[own[d]] for d in dirs]
            asens = [[slots[id(dep)][d] for dep in node.deps] for d in dirs]
            node.evaluate_mx([MX(dep) for dep in node.deps], [MX(node)],
                             [], [], aseed, asens, True)
            for d in dirs:
                if not own[d].is_empty():
                    raise RuntimeError("Node %r did not consume its adjoint "
                                       "seed." % node)
        logger.debug("Reverse sweep of '%s' in %d directions.", self.name, ndir)
        result = []
        for d in range(ndir):
            row = []
            for x in self._inputs:
                slot = slots[id(x.node)][d]
                row.append(MX.zeros(x.sparsity) if slot.is_empty() else slot.take())
            result.append(row)
        return result

    def generate(self, language='c', name=None, **kwargs):
        r"""Return source code computing this function.

        See codegen.CodeGenerator for the options.
        """
        from .codegen import CodeGenerator
        return CodeGenerator(language=language, **kwargs).generate(self, name=name)

    def __repr__(self):
        return "<GraphFunction %s: %d -> %d, %d nodes>" % (
            self.name, self.n_in, self.n_out, len(self._nodes)
        )
