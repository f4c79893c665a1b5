r"""@package exprgraph.node

Base of the expression node system.

Each node represents one operation in a directed acyclic graph (DAG). It
references the nodes it depends on, knows its own output sparsity and
implements the evaluation contract used by the graph driver
function.GraphFunction:

    * evaluate_d(), evaluate_mp() and evaluate_sx() compute the output
      nonzeros from the dependencies' nonzeros using floating point,
      `mpmath` or SymPy elements. All three delegate to the one method
      _evaluate_gen(), which receives a common._ElementContext providing the
      element specific operations.
    * propagate_sparsity() pushes dependency bits forward (from the
      dependencies to the output) or backward.
    * evaluate_mx() builds *new graph nodes* for forward and adjoint
      directional derivatives.
    * generate_operation() writes source code statements for the operation.
    * print_part() returns the text surrounding the dependencies when the
      expression is printed.

The buffers handed to these methods belong to the caller. Their sizes have to
match the `nnz` of the corresponding sparsity pattern; this is not checked
here. A buffer may be passed as both input and output (in-place evaluation).
Buffers that overlap partially are not supported.

Nodes are never modified once constructed. They are wrapped in mx.MX handles,
which are the objects users actually deal with.
"""

import copy
from abc import ABCMeta, abstractmethod

from .common import NUMERIC, MPMATH, SYMBOLIC, DifferentiationError


__all__ = [
    "MXNode",
    "OP_PARAMETER",
    "OP_CONST",
    "OP_RESHAPE",
    "OP_SUBREF",
    "OP_SUBASSIGN",
    "OP_NEG",
    "OP_SIN",
    "OP_COS",
    "OP_EXP",
    "OP_LOG",
    "OP_SQRT",
    "OP_ADD",
    "OP_SUB",
    "OP_MUL",
    "OP_DIV",
]


# Operation codes identifying the kind of a node.
OP_PARAMETER = 0
OP_CONST = 1
OP_RESHAPE = 2
OP_SUBREF = 3
OP_SUBASSIGN = 4
OP_NEG = 10
OP_SIN = 11
OP_COS = 12
OP_EXP = 13
OP_LOG = 14
OP_SQRT = 15
OP_ADD = 20
OP_SUB = 21
OP_MUL = 22
OP_DIV = 23


class MXNode(metaclass=ABCMeta):
    """Parent class for all nodes of the expression graph.

    The methods a child has to override are:
        * _evaluate_gen() computing the output for a given element context
        * propagate_sparsity()
        * generate_operation()
        * print_part()
        * the `op` class attribute

    Children that can be differentiated also override evaluate_mx(). The
    default implementation refuses to build derivatives.
    """

    ## Operation code of this kind of node.
    op = None

    ## Whether the output buffer may be the same storage as the buffer of the
    ## first dependency (used by the graph driver to save buffers).
    supports_inplace = False

    def __init__(self):
        self._deps = ()
        self._sparsity = None

    def set_dependencies(self, *deps):
        r"""Store the nodes of the given MX handles as dependencies.

        The nodes (not the handles) are stored, so that later changes to a
        handle (e.g. via mx.MX.add_to_sum()) never affect this node.
        """
        nodes = []
        for d in deps:
            if d.is_empty():
                raise ValueError("Cannot depend on an empty expression.")
            nodes.append(d.node)
        self._deps = tuple(nodes)

    def set_sparsity(self, sparsity):
        r"""Set the output sparsity (only during construction)."""
        self._sparsity = sparsity

    @property
    def sparsity(self):
        r"""Sparsity pattern of the output of this node."""
        return self._sparsity

    @property
    def shape(self):
        return self._sparsity.shape

    @property
    def nnz(self):
        return self._sparsity.nnz

    @property
    def n_dep(self):
        r"""Number of dependencies."""
        return len(self._deps)

    @property
    def deps(self):
        r"""Tuple of the dependency nodes."""
        return self._deps

    def dep(self, i=0):
        r"""Return an MX handle to the i'th dependency."""
        from .mx import MX
        return MX(self._deps[i])

    def is_symbolic(self):
        r"""Whether this node is a free symbol (a function input)."""
        return False

    def is_constant(self):
        return False

    def n_tmp(self):
        r"""Return the number of integer and real scratch entries needed."""
        return 0, 0

    def clone(self):
        r"""Return a shallow copy sharing dependencies and sparsity."""
        return copy.copy(self)

    def evaluate_d(self, inputs, outputs, itmp=None, rtmp=None):
        r"""Evaluate numerically using double precision buffers."""
        self._evaluate_gen(inputs, outputs, itmp, rtmp, NUMERIC)

    def evaluate_mp(self, inputs, outputs, itmp=None, rtmp=None):
        r"""Evaluate numerically using buffers of `mpmath.mpf` elements."""
        self._evaluate_gen(inputs, outputs, itmp, rtmp, MPMATH)

    def evaluate_sx(self, inputs, outputs, itmp=None, rtmp=None):
        r"""Evaluate using buffers of SymPy scalar expressions."""
        self._evaluate_gen(inputs, outputs, itmp, rtmp, SYMBOLIC)

    @abstractmethod
    def _evaluate_gen(self, inputs, outputs, itmp, rtmp, ctx):
        r"""Compute `outputs[0]` from the `inputs` buffers.

        Args:
            inputs: List of one nonzero buffer per dependency. These must not
                    be modified (unless one of them is also an output).
            outputs: List with the output buffer.
            itmp:   Integer scratch buffer of the size declared by n_tmp().
            rtmp:   Element scratch buffer of the size declared by n_tmp().
            ctx:    The element context (common.NUMERIC, common.MPMATH or
                    common.SYMBOLIC).
        """
        pass

    @abstractmethod
    def propagate_sparsity(self, inputs, outputs, fwd):
        r"""Propagate dependency bits through the operation.

        In forward mode (`fwd=True`), the output bits are set from the input
        bits following the operation's index mapping. In reverse mode, each
        output bit is OR'ed into the input bits it depends on, after which
        the output bits are set to zero.
        """
        pass

    def evaluate_mx(self, inputs, outputs, fwd_seed, fwd_sens, adj_seed,
                    adj_sens, output_given):
        r"""Build the graphs of the output and its directional derivatives.

        Args:
            inputs: List of MX handles of the dependencies.
            outputs: List with one entry. Unless `output_given`, this is set
                    to the MX of this operation applied to `inputs`.
            fwd_seed: `fwd_seed[d][i]` is the forward seed of direction `d`
                    for dependency `i`.
            fwd_sens: `fwd_sens[d][0]` is set to the forward sensitivity of
                    direction `d`.
            adj_seed: `adj_seed[d][0]` is the adjoint seed of direction `d`.
                    It is taken (leaving an empty MX) when consumed.
            adj_sens: `adj_sens[d][i]` is the adjoint sensitivity slot of
                    dependency `i`, to which the contribution of this node is
                    *added*.
            output_given: Whether `outputs` already holds the result.
        """
        raise DifferentiationError("Node %s does not support derivatives."
                                   % type(self).__name__)

    @abstractmethod
    def generate_operation(self, stream, arg, res, gen):
        r"""Write the statements performing the operation to `stream`.

        Args:
            stream: File-like object to write to.
            arg:    Names of the dependency buffers.
            res:    Names of the output buffers.
            gen:    The codegen.CodeGenerator producing the code.
        """
        pass

    @abstractmethod
    def print_part(self, part):
        r"""Return the text printed before dependency `part`.

        For `part == n_dep`, return the text printed after the last
        dependency. Nodes without dependencies return their complete
        representation for `part == 0`.
        """
        pass

    def get_reshape(self, sparsity):
        r"""Return an MX reshaping this node's output to `sparsity`.

        Child classes may override this to simplify the graph.
        """
        from .mx import MX
        from .reshape import Reshape
        return MX.create(Reshape(MX(self), sparsity))

    def __repr__(self):
        return "<%s %s>" % (type(self).__name__, self._sparsity)
