r"""@package exprgraph

Expression graphs for building and evaluating matrix valued functions and
their derivatives.

An expression is a directed acyclic graph (DAG) of nodes, each representing
one operation (see node.MXNode). Users build graphs through mx.MX handles:

~~~.py
x = MX.sym('x', 2, 3)
y = sin(reshape(x, 3, 2)[1:3, :])
f = GraphFunction([x], [y])
~~~

The function object then evaluates the graph using floating point numbers,
`mpmath` arbitrary precision numbers or SymPy symbolic scalars, propagates
sparsity bits to find the structure of Jacobians, builds new graphs for
forward and adjoint derivatives and generates C or Python source code.

Every value in a graph is a (possibly sparse) matrix. All evaluation works on
buffers containing only the structural nonzeros, in the order defined by the
value's sparsity.Sparsity pattern.
"""

from .common import StructureError, DifferentiationError
from .sparsity import Sparsity
from .slice import Slice
from .mx import MX, reshape, sub_ref, sub_assign, sin, cos, exp, log, sqrt
from .function import GraphFunction
from .codegen import CodeGenerator
