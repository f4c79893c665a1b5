r"""@package exprgraph.reshape

Reshape: reinterpret the nonzeros of an expression with a new sparsity.

The nonzero buffer of the result is a plain copy of the dependency's buffer,
element by element in the same order. Only the pattern describing where these
values live in the matrix changes. This makes the output a valid alias of its
input, so the graph driver may hand the same buffer to both, in which case
all operations below return immediately.
"""

from .common import StructureError
from .mx import reshape
from . import node as _node
from .node import MXNode


__all__ = [
    "Reshape",
]


class Reshape(MXNode):
    r"""Structure preserving unary operation."""

    op = _node.OP_RESHAPE
    supports_inplace = True

    def __init__(self, x, sparsity):
        r"""Init function.

        Args:
            x:      The MX to reshape.
            sparsity: The target pattern. Must have as many nonzeros as `x`.

        Raises:
            StructureError: If the number of nonzeros differs.
        """
        super(Reshape, self).__init__()
        if x.nnz != sparsity.nnz:
            raise StructureError("Reshape needs equal numbers of nonzeros, "
                                 "got %d and %d." % (x.nnz, sparsity.nnz))
        self.set_dependencies(x)
        self.set_sparsity(sparsity)

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        # Quick return if inplace
        if inputs[0] is outputs[0]:
            return
        outputs[0][:] = inputs[0]

    def propagate_sparsity(self, inputs, outputs, fwd):
        # Quick return if inplace
        if inputs[0] is outputs[0]:
            return
        arg, res = inputs[0], outputs[0]
        if fwd:
            res[:] = arg
        else:
            arg |= res
            res[:] = 0

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        # Quick return if inplace
        if inputs[0] is outputs[0]:
            return
        if not output_given:
            outputs[0] = reshape(inputs[0], self.sparsity)
        for d in range(len(fwd_sens)):
            fwd_sens[d][0] = reshape(fwd_seed[d][0], self.sparsity)
        dep_sparsity = self.deps[0].sparsity
        for d in range(len(adj_seed)):
            seed = adj_seed[d][0].take()
            adj_sens[d][0].add_to_sum(reshape(seed, dep_sparsity))

    def generate_operation(self, stream, arg, res, gen):
        # Quick return if inplace
        if arg[0] == res[0]:
            return
        for k in range(self.nnz):
            gen.assign(stream, "%s[%d]" % (res[0], k), "%s[%d]" % (arg[0], k))

    def print_part(self, part):
        if part == 0:
            return "reshape("
        return ")"

    def get_reshape(self, sparsity):
        # Reshaping a reshape only needs the original nonzeros.
        return reshape(self.dep(0), sparsity)
