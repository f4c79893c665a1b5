r"""@package exprgraph.mx

Handles to expression graph nodes and the functions constructing graphs.

An MX object holds a shared reference to one node.MXNode (or nothing, in
which case it is *empty*). Many handles may refer to the same node and a node
is referenced by all nodes depending on it, which makes the graph a DAG with
shared sub-expressions. Since nodes can only ever reference already existing
nodes, the graph cannot contain cycles.

Handles are also used as *slots* when building derivatives: an empty handle
is the neutral element that adjoint contributions are added to via
add_to_sum(), and take() moves the value out of a slot, leaving it empty.

@b Examples

~~~.py
x = MX.sym('x', 2, 3)
y = reshape(x, 3, 2)
z = y[1:3, :] * 2.0 + sin(y[0:2, :])
print(z)
~~~
"""

import numbers

import numpy as np

from .common import StructureError
from .sparsity import Sparsity
from .slice import Slice
from . import node as _node


__all__ = [
    "MX",
    "reshape",
    "sub_ref",
    "sub_assign",
    "sin",
    "cos",
    "exp",
    "log",
    "sqrt",
]


def _to_sparsity(nrow, ncol):
    if isinstance(nrow, Sparsity):
        return nrow
    return Sparsity.dense(nrow, ncol)


class MX(object):
    r"""Handle of an expression graph node."""

    def __init__(self, node=None):
        r"""Create a handle to `node`, or an empty handle if `node` is `None`."""
        if node is not None and not isinstance(node, _node.MXNode):
            raise TypeError("Expected an MXNode, got %r." % (node,))
        self._node = node

    @classmethod
    def create(cls, node):
        r"""Wrap a newly constructed node."""
        return cls(node)

    @classmethod
    def sym(cls, name, nrow=1, ncol=1):
        r"""Create a free symbol.

        Args:
            name:   Name of the symbol.
            nrow:   Number of rows or a Sparsity pattern.
            ncol:   Number of columns (ignored if `nrow` is a pattern).
        """
        from .basics import SymbolicMX
        return cls.create(SymbolicMX(name, _to_sparsity(nrow, ncol)))

    @classmethod
    def zeros(cls, nrow=1, ncol=1):
        r"""Constant zero with the given shape or sparsity pattern."""
        sp = _to_sparsity(nrow, ncol)
        return cls.constant(np.zeros(sp.nnz), sp)

    @classmethod
    def ones(cls, nrow=1, ncol=1):
        sp = _to_sparsity(nrow, ncol)
        return cls.constant(np.ones(sp.nnz), sp)

    @classmethod
    def constant(cls, values, sparsity=None):
        r"""Create a constant node.

        Args:
            values: Nonzero values if a `sparsity` is given, otherwise a
                    number, a vector (giving a column) or a 2D array (giving
                    a dense matrix).
            sparsity: Optional pattern the `values` are the nonzeros of.
        """
        from .basics import Constant
        if sparsity is None:
            arr = np.asarray(values, dtype=float)
            if arr.ndim == 0:
                arr = arr.reshape(1, 1)
            elif arr.ndim == 1:
                arr = arr.reshape(-1, 1)
            sparsity = Sparsity.dense(*arr.shape)
            values = sparsity.nonzeros(arr)
        return cls.create(Constant(values, sparsity))

    @property
    def node(self):
        r"""The node this handle refers to (`None` if empty)."""
        return self._node

    def is_empty(self):
        r"""Whether this handle does not refer to a node."""
        return self._node is None

    def _get_node(self):
        if self._node is None:
            raise ValueError("Empty MX used where an expression is required.")
        return self._node

    @property
    def sparsity(self):
        return self._get_node().sparsity

    @property
    def shape(self):
        return self._get_node().shape

    @property
    def nnz(self):
        return self._get_node().nnz

    @property
    def op(self):
        r"""Operation code of the referenced node."""
        return self._get_node().op

    @property
    def n_dep(self):
        return self._get_node().n_dep

    def dep(self, i=0):
        return self._get_node().dep(i)

    def is_symbolic(self):
        return self._node is not None and self._node.is_symbolic()

    def is_constant(self):
        return self._node is not None and self._node.is_constant()

    def is_zero(self):
        r"""Whether this is a constant with only zero values."""
        return self.is_constant() and self._node.is_zero()

    @property
    def name(self):
        r"""Name of a free symbol."""
        if not self.is_symbolic():
            raise TypeError("Only symbols have a name.")
        return self._node.name

    def add_to_sum(self, other):
        r"""Add `other` to this handle in place.

        If this handle is empty, it is set to refer to `other`'s node. Zero
        constants are not added.
        """
        if other.is_empty():
            return
        if self.is_empty():
            self._node = other.node
        elif other.is_zero() and other.sparsity == self.sparsity:
            return
        elif self.is_zero() and other.sparsity == self.sparsity:
            self._node = other.node
        else:
            self._node = (self + other).node

    def take(self):
        r"""Return a new handle to the current value and empty this one."""
        result = MX(self._node)
        self._node = None
        return result

    def reshape(self, *shape):
        r"""Shortcut for `reshape(self, *shape)`."""
        return reshape(self, *shape)

    def __getitem__(self, key):
        r"""Submatrix reference `x[i, j]` with integers or slices.

        A single key addresses rows of a column vector or columns of a row
        vector.
        """
        if isinstance(key, tuple):
            if len(key) != 2:
                raise IndexError("Expected two indices, got %d." % len(key))
            i, j = key
        elif self.shape[1] == 1:
            i, j = key, slice(None)
        elif self.shape[0] == 1:
            i, j = slice(None), key
        else:
            raise IndexError("Single index requires a vector, shape is %dx%d."
                             % self.shape)
        return sub_ref(self, i, j)

    def _binary(self, op, other, swap=False):
        from .basics import BinaryMX
        other = _as_mx(other, self.sparsity)
        x, y = (other, self) if swap else (self, other)
        if x.sparsity == y.sparsity:
            # Avoid growing derivative graphs with trivial operations.
            if op in (_node.OP_ADD, _node.OP_SUB) and y.is_zero():
                return MX(x.node)
            if op == _node.OP_ADD and x.is_zero():
                return MX(y.node)
            if op == _node.OP_MUL and (x.is_zero() or y.is_zero()):
                return MX.zeros(x.sparsity)
        return MX.create(BinaryMX(op, x, y))

    def __add__(self, other):
        return self._binary(_node.OP_ADD, other)

    def __radd__(self, other):
        return self._binary(_node.OP_ADD, other, swap=True)

    def __sub__(self, other):
        return self._binary(_node.OP_SUB, other)

    def __rsub__(self, other):
        return self._binary(_node.OP_SUB, other, swap=True)

    def __mul__(self, other):
        return self._binary(_node.OP_MUL, other)

    def __rmul__(self, other):
        return self._binary(_node.OP_MUL, other, swap=True)

    def __truediv__(self, other):
        return self._binary(_node.OP_DIV, other)

    def __rtruediv__(self, other):
        return self._binary(_node.OP_DIV, other, swap=True)

    def __neg__(self):
        return _unary(_node.OP_NEG, self)

    def __str__(self):
        if self.is_empty():
            return "MX()"
        return _print_node(self._node)

    def __repr__(self):
        return "MX(%s)" % self


def _as_mx(value, sparsity):
    r"""Convert numbers to constants with the given sparsity."""
    if isinstance(value, MX):
        return value
    if isinstance(value, numbers.Number):
        return MX.constant(np.full(sparsity.nnz, float(value)), sparsity)
    return MX.constant(value)


def _print_node(node):
    parts = []
    for i, d in enumerate(node.deps):
        parts.append(node.print_part(i))
        parts.append(_print_node(d))
    parts.append(node.print_part(node.n_dep))
    return "".join(parts)


def _unary(op, x):
    from .basics import UnaryMX
    return MX.create(UnaryMX(op, x))


def sin(x):
    return _unary(_node.OP_SIN, x)


def cos(x):
    return _unary(_node.OP_COS, x)


def exp(x):
    return _unary(_node.OP_EXP, x)


def log(x):
    return _unary(_node.OP_LOG, x)


def sqrt(x):
    return _unary(_node.OP_SQRT, x)


def reshape(x, *shape):
    r"""Reshape `x` to a new shape or sparsity pattern.

    The nonzeros of `x` are reinterpreted in the same order as nonzeros of the
    target pattern. Either pass a Sparsity with the same `nnz` as `x`, or a
    new shape `(nrow, ncol)` with the same number of entries, in which case
    the entries keep their column-major linear position.

    Raises:
        StructureError: If the target pattern has a different `nnz`.
    """
    if len(shape) == 1 and isinstance(shape[0], Sparsity):
        sp = shape[0]
    else:
        if len(shape) == 1:
            shape = tuple(shape[0])
        if len(shape) != 2:
            raise TypeError("reshape() expects a Sparsity or two dimensions.")
        sp = x.sparsity.reshape(*shape)
    if sp == x.sparsity:
        return MX(x.node)
    if not x.sparsity.is_reshape_compatible(sp):
        raise StructureError("Cannot reshape %d nonzeros into %r."
                             % (x.nnz, sp))
    return x.node.get_reshape(sp)


def sub_ref(x, i, j):
    r"""Reference the submatrix of `x` addressed by the slices `i` and `j`.

    The result has the shape of the addressed block and contains those of
    its entries that are structural nonzeros of `x`.
    """
    from .subref import SubRef
    i, j = Slice.create(i), Slice.create(j)
    nrow, ncol = x.shape
    if i.is_full(nrow) and j.is_full(ncol):
        return MX(x.node)
    return MX.create(SubRef(x, i, j))


def sub_assign(base, value, i, j):
    r"""Return `base` with the block addressed by `i`, `j` replaced by `value`.

    Only structural nonzeros of `base` can be assigned to; entries of `value`
    that land on structural zeros are dropped.
    """
    from .subref import SubAssign
    return MX.create(SubAssign(base, value, Slice.create(i), Slice.create(j)))
