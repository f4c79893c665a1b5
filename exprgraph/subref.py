r"""@package exprgraph.subref

Submatrix reference and assignment.

Both operations address a block of a matrix using two slice.Slice objects
(one per axis). Since the nonzeros of the block are in general not a
contiguous part of the matrix' nonzeros, the mapping between nonzero indices
is computed once at construction time and all evaluations, bit propagations
and derivatives walk this mapping.
"""

import numpy as np

from .common import StructureError
from .mx import MX, sub_ref, sub_assign
from . import node as _node
from .node import MXNode


__all__ = [
    "SubRef",
    "SubAssign",
]


def _readonly(arr):
    arr = np.asarray(arr, dtype=np.int64)
    arr.setflags(write=False)
    return arr


class SubRef(MXNode):
    r"""Reference to a submatrix `x[i, j]`.

    The result has the shape of the addressed block. Its nonzeros are the
    entries of the block that are structural nonzeros of `x`.
    """

    op = _node.OP_SUBREF

    def __init__(self, x, i, j):
        r"""Init function.

        Args:
            x:      The MX to take the block from.
            i:      slice.Slice for the rows.
            j:      slice.Slice for the columns.
        """
        super(SubRef, self).__init__()
        ## Row slice.
        self.i = i
        ## Column slice.
        self.j = j
        self.set_dependencies(x)
        sp, mapping = x.sparsity.sub(i.get_all(x.shape[0]), j.get_all(x.shape[1]))
        self.set_sparsity(sp)
        ## Nonzero index in `x` of each output nonzero.
        self.mapping = _readonly(mapping)

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        # Always write: source and destination addressing differ.
        outputs[0][:] = inputs[0][self.mapping]

    def propagate_sparsity(self, inputs, outputs, fwd):
        arg, res = inputs[0], outputs[0]
        if fwd:
            res[:] = arg[self.mapping]
        else:
            np.bitwise_or.at(arg, self.mapping, res)
            res[:] = 0

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        x = inputs[0]
        if not output_given:
            outputs[0] = sub_ref(x, self.i, self.j)
        for d in range(len(fwd_sens)):
            fwd_sens[d][0] = sub_ref(fwd_seed[d][0], self.i, self.j)
        for d in range(len(adj_seed)):
            seed = adj_seed[d][0].take()
            # Route each seed entry back to the nonzero it was read from.
            sens = sub_assign(MX.zeros(x.sparsity), seed, self.i, self.j)
            adj_sens[d][0].add_to_sum(sens)

    def generate_operation(self, stream, arg, res, gen):
        for k, m in enumerate(self.mapping):
            gen.assign(stream, "%s[%d]" % (res[0], k), "%s[%d]" % (arg[0], m))

    def print_part(self, part):
        if part == 0:
            return ""
        return "[%s, %s]" % (self.i, self.j)


class SubAssign(MXNode):
    r"""Copy of a matrix with one block replaced, i.e. `x[i, j] = y`.

    The result has the sparsity of `x`. The value `y` must have the sparsity
    of the referenced block `x[i, j]`, such that each of its nonzeros lands on
    exactly one nonzero of `x`.
    """

    op = _node.OP_SUBASSIGN

    def __init__(self, x, y, i, j):
        super(SubAssign, self).__init__()
        self.i = i
        self.j = j
        sp, mapping = x.sparsity.sub(i.get_all(x.shape[0]), j.get_all(x.shape[1]))
        if y.sparsity != sp:
            raise StructureError("Assigned value has sparsity %r, but the "
                                 "block [%s, %s] has %r." % (y.sparsity, i, j, sp))
        self.set_dependencies(x, y)
        self.set_sparsity(x.sparsity)
        ## Nonzero index in `x` each nonzero of `y` is written to.
        self.mapping = _readonly(mapping)
        mask = np.ones(x.nnz, dtype=bool)
        mask[mapping] = False
        mask.setflags(write=False)
        ## Nonzeros of the result taken from `x`.
        self.kept = mask

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        base, value = inputs
        res = outputs[0]
        if base is not res:
            res[:] = base
        res[self.mapping] = value

    def propagate_sparsity(self, inputs, outputs, fwd):
        base, value = inputs
        res = outputs[0]
        if fwd:
            if base is not res:
                res[:] = base
            res[self.mapping] = value
        else:
            value |= res[self.mapping]
            if base is res:
                res[self.mapping] = 0
            else:
                base[self.kept] |= res[self.kept]
                res[:] = 0

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        x, y = inputs
        if not output_given:
            outputs[0] = sub_assign(x, y, self.i, self.j)
        for d in range(len(fwd_sens)):
            sx, sy = fwd_seed[d]
            fwd_sens[d][0] = sub_assign(sx, sy, self.i, self.j)
        for d in range(len(adj_seed)):
            seed = adj_seed[d][0].take()
            adj_sens[d][0].add_to_sum(
                sub_assign(seed, MX.zeros(y.sparsity), self.i, self.j)
            )
            adj_sens[d][1].add_to_sum(sub_ref(seed, self.i, self.j))

    def generate_operation(self, stream, arg, res, gen):
        if arg[0] != res[0]:
            for k in range(self.nnz):
                gen.assign(stream, "%s[%d]" % (res[0], k), "%s[%d]" % (arg[0], k))
        for k, m in enumerate(self.mapping):
            gen.assign(stream, "%s[%d]" % (res[0], m), "%s[%d]" % (arg[1], k))

    def print_part(self, part):
        if part == 0:
            return "("
        if part == 1:
            return "[%s, %s] = " % (self.i, self.j)
        return ")"
