r"""@package exprgraph.common

Utils used by multiple modules in exprgraph.

This contains the exception classes of the package, the data type used for
sparsity bit propagation and the *element contexts*. The latter allow the
same evaluation code of a node to run on floating point numbers, `mpmath`
arbitrary precision numbers or SymPy symbolic expressions, since each
context provides the elementary functions under the same names.
"""

import numpy as np
import sympy as sp
from mpmath import mp


__all__ = [
    "StructureError",
    "DifferentiationError",
    "BVEC_T",
    "BVEC_SIZE",
    "NUMERIC",
    "MPMATH",
    "SYMBOLIC",
    "bvec_zeros",
]


class StructureError(ValueError):
    r"""Raised when a node cannot be constructed for structural reasons."""
    pass


class DifferentiationError(NotImplementedError):
    r"""Raised when a derivative graph is requested that cannot be built."""
    pass


## Data type of a sparsity bit vector entry. Each of the bits is an
## independent direction, so one sweep handles up to 64 seed directions.
BVEC_T = np.uint64

## Number of directions handled in one sparsity propagation sweep.
BVEC_SIZE = 64


def bvec_zeros(n):
    r"""Create a zeroed bit vector buffer of length `n`."""
    return np.zeros(n, dtype=BVEC_T)


class _ElementContext(object):
    r"""Namespace of element operations for one kind of scalar element.

    The evaluation code of the nodes is written once and receives one of the
    contexts defined below. Arithmetic operators work on all element types
    through NumPy (object arrays dispatch to the Python operators), while
    elementary functions are looked up on the context's `module`.
    """
    def __init__(self, name, module, dtype, convert, vectorized):
        ## Short name of the context (used in messages only).
        self.name = name
        ## Module providing `sin`, `cos`, `exp`, `log` and `sqrt`.
        self.module = module
        ## Data type of buffers of this element type.
        self.dtype = dtype
        ## Converts Python numbers to elements of this context.
        self.convert = convert
        ## Whether the module's functions operate on whole arrays.
        self.vectorized = vectorized

    def empty(self, n):
        r"""Create a buffer for `n` elements of this type."""
        if self.dtype is object:
            buf = np.empty(n, dtype=object)
            for k in range(n):
                buf[k] = self.convert(0)
            return buf
        return np.zeros(n, dtype=self.dtype)

    def asbuffer(self, values):
        r"""Convert a sequence of values into a buffer of this type."""
        if not isinstance(values, np.ndarray):
            values = list(values)
        buf = self.empty(len(values))
        for k, v in enumerate(values):
            buf[k] = self.convert(v)
        return buf

    def apply(self, fname, arg, res):
        r"""Apply the elementary function `fname` element-wise.

        `arg` and `res` may be the same buffer.
        """
        func = getattr(self.module, fname)
        if self.vectorized:
            func(arg, out=res)
        else:
            for k in range(len(arg)):
                res[k] = func(arg[k])

    def __repr__(self):
        return "<%s element context>" % self.name


def _sympify(value):
    if isinstance(value, sp.Basic):
        return value
    return sp.sympify(value)


## Double precision floating point evaluation.
NUMERIC = _ElementContext("numeric", np, np.float64, float, True)

## Arbitrary precision evaluation using `mpmath`.
MPMATH = _ElementContext("mpmath", mp, object, mp.mpf, False)

## Evaluation over SymPy symbolic scalar expressions.
SYMBOLIC = _ElementContext("symbolic", sp, object, _sympify, False)
