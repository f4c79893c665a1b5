r"""@package exprgraph.basics

Collection of basic node.MXNode subclasses.

These are the leaves of every graph (free symbols and constants) and the
element-wise operations. The structural operations live in reshape and
subref.
"""

import numpy as np

from .common import StructureError
from .mx import MX, sin, cos
from . import node as _node
from .node import MXNode


__all__ = [
    "SymbolicMX",
    "Constant",
    "UnaryMX",
    "BinaryMX",
]


class SymbolicMX(MXNode):
    r"""Free symbol, i.e. an input of a graph function.

    Symbols do not compute anything: the graph driver writes the input values
    into their buffers and reads their adjoint slots after a reverse sweep.
    Being leaves of the graph, symbols are terminal in derivative sweeps:
    evaluate_mx() neither takes their adjoint seeds nor writes forward
    sensitivities, since the seed slot of a symbol already holds its result.
    """

    op = _node.OP_PARAMETER

    def __init__(self, name, sparsity):
        super(SymbolicMX, self).__init__()
        ## Name of the symbol.
        self.name = name
        self.set_sparsity(sparsity)

    def is_symbolic(self):
        return True

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        pass

    def propagate_sparsity(self, inputs, outputs, fwd):
        pass

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        r"""Only build the output handle; `adj_seed` is left untouched."""
        if not output_given:
            outputs[0] = MX(self)

    def generate_operation(self, stream, arg, res, gen):
        pass

    def print_part(self, part):
        return self.name


class Constant(MXNode):
    r"""Node with fixed nonzero values."""

    op = _node.OP_CONST

    def __init__(self, values, sparsity):
        r"""Init function.

        Args:
            values: The `sparsity.nnz` nonzero values.
            sparsity: Pattern of the constant.
        """
        super(Constant, self).__init__()
        values = np.array(values, dtype=float).ravel()
        if values.size != sparsity.nnz:
            raise StructureError("Got %d values for %d nonzeros."
                                 % (values.size, sparsity.nnz))
        values.setflags(write=False)
        ## The nonzero values.
        self.values = values
        self.set_sparsity(sparsity)

    def is_constant(self):
        return True

    def is_zero(self):
        return not np.any(self.values)

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        res = outputs[0]
        for k, v in enumerate(self.values):
            res[k] = ctx.convert(v)

    def propagate_sparsity(self, inputs, outputs, fwd):
        # Constants depend on nothing, in both directions.
        outputs[0][:] = 0

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        if not output_given:
            outputs[0] = MX(self)
        for d in range(len(fwd_sens)):
            fwd_sens[d][0] = MX.zeros(self.sparsity)
        for d in range(len(adj_seed)):
            adj_seed[d][0].take()

    def generate_operation(self, stream, arg, res, gen):
        for k, v in enumerate(self.values):
            gen.assign(stream, "%s[%d]" % (res[0], k), gen.constant(v))

    def print_part(self, part):
        if self.nnz and self.is_zero():
            return "zeros(%dx%d)" % self.shape
        if self.is_scalar_value():
            return "%g" % self.values[0]
        return "[%s]" % ", ".join("%g" % v for v in self.values)

    def is_scalar_value(self):
        return self.sparsity.is_scalar() and self.nnz == 1


# Text, function name and derivative of the element-wise unary operations.
# The derivative receives the argument `x` and the result `f` as MX.
_UNARY = {
    _node.OP_NEG: ("-", None, None),
    _node.OP_SIN: ("sin", "sin", lambda x, f: cos(x)),
    _node.OP_COS: ("cos", "cos", lambda x, f: -sin(x)),
    _node.OP_EXP: ("exp", "exp", lambda x, f: f),
    _node.OP_LOG: ("log", "log", lambda x, f: 1.0 / x),
    _node.OP_SQRT: ("sqrt", "sqrt", lambda x, f: 0.5 / f),
}

_BINARY = {
    _node.OP_ADD: ("+", np.add),
    _node.OP_SUB: ("-", np.subtract),
    _node.OP_MUL: ("*", np.multiply),
    _node.OP_DIV: ("/", np.divide),
}


class UnaryMX(MXNode):
    r"""Element-wise unary operation.

    The output has the sparsity of the argument. For operations where
    `f(0) != 0` (like `cos` or `exp`), structural zeros of the argument stay
    structural zeros of the result, i.e. the function is applied to the
    nonzeros only.
    """

    def __init__(self, op, x):
        super(UnaryMX, self).__init__()
        if op not in _UNARY:
            raise ValueError("Unknown unary operation %r." % (op,))
        self.op = op
        self.set_dependencies(x)
        self.set_sparsity(x.sparsity)

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        arg, res = inputs[0], outputs[0]
        if self.op == _node.OP_NEG:
            np.negative(arg, out=res)
        else:
            ctx.apply(_UNARY[self.op][1], arg, res)

    def propagate_sparsity(self, inputs, outputs, fwd):
        arg, res = inputs[0], outputs[0]
        if arg is res:
            return
        if fwd:
            res[:] = arg
        else:
            arg |= res
            res[:] = 0

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        x = inputs[0]
        if not output_given:
            outputs[0] = MX.create(UnaryMX(self.op, x))
        f = outputs[0]
        deriv = _UNARY[self.op][2]
        pd = None if deriv is None else deriv(x, f)
        for d in range(len(fwd_sens)):
            seed = fwd_seed[d][0]
            fwd_sens[d][0] = -seed if pd is None else pd * seed
        for d in range(len(adj_seed)):
            seed = adj_seed[d][0].take()
            adj_sens[d][0].add_to_sum(-seed if pd is None else pd * seed)

    def generate_operation(self, stream, arg, res, gen):
        fname = _UNARY[self.op][1]
        if fname is not None:
            gen.use_function(fname)
            template = fname + "(%s)"
        else:
            template = "-%s"
        for k in range(self.nnz):
            gen.assign(stream, "%s[%d]" % (res[0], k),
                       template % ("%s[%d]" % (arg[0], k)))

    def print_part(self, part):
        text = _UNARY[self.op][0]
        if part == 0:
            return "(-" if self.op == _node.OP_NEG else text + "("
        return ")"


class BinaryMX(MXNode):
    r"""Element-wise binary operation on two operands of equal sparsity."""

    def __init__(self, op, x, y):
        super(BinaryMX, self).__init__()
        if op not in _BINARY:
            raise ValueError("Unknown binary operation %r." % (op,))
        if x.sparsity != y.sparsity:
            raise StructureError("Operands of %r have different sparsity: "
                                 "%r and %r." % (_BINARY[op][0], x.sparsity,
                                                 y.sparsity))
        self.op = op
        self.set_dependencies(x, y)
        self.set_sparsity(x.sparsity)

    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        _BINARY[self.op][1](inputs[0], inputs[1], out=outputs[0])

    def propagate_sparsity(self, inputs, outputs, fwd):
        a, b = inputs
        res = outputs[0]
        if fwd:
            np.bitwise_or(a, b, out=res)
        else:
            a |= res
            b |= res
            res[:] = 0

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        x, y = inputs
        if not output_given:
            outputs[0] = MX.create(BinaryMX(self.op, x, y))
        f = outputs[0]
        op = self.op
        for d in range(len(fwd_sens)):
            sx, sy = fwd_seed[d]
            if op == _node.OP_ADD:
                sens = sx + sy
            elif op == _node.OP_SUB:
                sens = sx - sy
            elif op == _node.OP_MUL:
                sens = sx * y + x * sy
            else:
                sens = (sx - f * sy) / y
            fwd_sens[d][0] = sens
        for d in range(len(adj_seed)):
            seed = adj_seed[d][0].take()
            if op == _node.OP_ADD:
                ax, ay = seed, seed
            elif op == _node.OP_SUB:
                ax, ay = seed, -seed
            elif op == _node.OP_MUL:
                ax, ay = seed * y, seed * x
            else:
                ax = seed / y
                ay = -(seed * f) / y
            adj_sens[d][0].add_to_sum(ax)
            adj_sens[d][1].add_to_sum(ay)

    def generate_operation(self, stream, arg, res, gen):
        text = _BINARY[self.op][0]
        for k in range(self.nnz):
            gen.assign(stream, "%s[%d]" % (res[0], k),
                       "%s[%d] %s %s[%d]" % (arg[0], k, text, arg[1], k))

    def print_part(self, part):
        if part == 0:
            return "("
        if part == 1:
            return " %s " % _BINARY[self.op][0]
        return ")"
