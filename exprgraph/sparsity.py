r"""@package exprgraph.sparsity

Sparsity patterns describing the nonzero structure of matrix valued nodes.

A pattern is stored in compressed column storage: `colind[c]` is the index of
the first nonzero of column `c` and `row[k]` is the row of the `k`'th
nonzero. Nonzeros are thus ordered column-major, and this *linear nonzero
order* is what all node evaluations are based on: a buffer belonging to a
node holds exactly `nnz` values in that order.

Patterns are immutable. They may (and should) be shared by reference between
all nodes with the same structure, which makes "cloning" a pattern free.

@b Examples

~~~.py
sp = Sparsity.dense(2, 3)
sp.nnz                  # 6
sp2 = sp.reshape(3, 2)  # same nonzero order, different shape
sub, mapping = sp.sub([1], [0, 2])
~~~
"""

import functools

import numpy as np
from scipy import sparse

from .common import StructureError


__all__ = [
    "Sparsity",
]


def _readonly(arr):
    arr = np.array(arr, dtype=np.int64)
    arr.setflags(write=False)
    return arr


class Sparsity(object):
    r"""Immutable nonzero structure of a `nrow x ncol` matrix."""

    def __init__(self, nrow, ncol, colind, row):
        r"""Create a pattern from its compressed column storage.

        Args:
            nrow:   Number of rows.
            ncol:   Number of columns.
            colind: Column offsets into `row`, of length `ncol+1`.
            row:    Row index of each nonzero; strictly increasing inside
                    each column.

        Raises:
            StructureError: If the arrays do not describe a valid pattern.
        """
        nrow, ncol = int(nrow), int(ncol)
        if nrow < 0 or ncol < 0:
            raise StructureError("Negative dimensions %dx%d." % (nrow, ncol))
        colind = _readonly(colind)
        row = _readonly(row)
        if colind.shape != (ncol + 1,):
            raise StructureError("colind must have ncol+1 = %d entries, got %d."
                                 % (ncol + 1, colind.size))
        if colind[0] != 0 or np.any(np.diff(colind) < 0):
            raise StructureError("colind must start at 0 and be non-decreasing.")
        if row.shape != (colind[-1],):
            raise StructureError("Got %d row indices but colind[-1] = %d."
                                 % (row.size, colind[-1]))
        if row.size and (row.min() < 0 or row.max() >= nrow):
            raise StructureError("Row index out of range for %d rows." % nrow)
        for c in range(ncol):
            if np.any(np.diff(row[colind[c]:colind[c+1]]) <= 0):
                raise StructureError("Rows of column %d are not strictly "
                                     "increasing." % c)
        self._nrow = nrow
        self._ncol = ncol
        self._colind = colind
        self._row = row
        self._hash = None

    @classmethod
    def dense(cls, nrow, ncol=1):
        r"""Pattern with all `nrow*ncol` entries structurally nonzero.

        Dense patterns are cached, so equal shapes share one object.
        """
        return _dense(int(nrow), int(ncol))

    @classmethod
    def scalar(cls):
        r"""Dense `1x1` pattern."""
        return cls.dense(1, 1)

    @classmethod
    def sparse(cls, nrow, ncol=1):
        r"""Pattern without any nonzeros."""
        return cls(nrow, ncol, np.zeros(int(ncol) + 1, dtype=np.int64), [])

    @classmethod
    def from_triplets(cls, nrow, ncol, rows, cols):
        r"""Create a pattern from the coordinates of its nonzeros.

        Duplicate coordinates are merged. The order of the given coordinates
        does not matter, the resulting nonzeros are ordered column-major.
        """
        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        if rows.shape != cols.shape:
            raise StructureError("rows and cols must have equal length.")
        if cols.size and (cols.min() < 0 or cols.max() >= ncol):
            raise StructureError("Column index out of range for %d columns." % ncol)
        if rows.size and (rows.min() < 0 or rows.max() >= nrow):
            raise StructureError("Row index out of range for %d rows." % nrow)
        lin = np.unique(cols * nrow + rows) if nrow else np.array([], dtype=np.int64)
        row = lin % nrow if nrow else lin
        col = lin // nrow if nrow else lin
        colind = np.zeros(ncol + 1, dtype=np.int64)
        np.add.at(colind, col + 1, 1)
        return cls(nrow, ncol, np.cumsum(colind), row)

    @classmethod
    def from_scipy(cls, mat):
        r"""Create a pattern from the stored entries of a SciPy sparse matrix."""
        mat = sparse.csc_matrix(mat)
        mat.sort_indices()
        mat.sum_duplicates()
        return cls(mat.shape[0], mat.shape[1], mat.indptr, mat.indices)

    @property
    def nrow(self):
        r"""Number of rows."""
        return self._nrow

    @property
    def ncol(self):
        r"""Number of columns."""
        return self._ncol

    @property
    def shape(self):
        r"""Tuple `(nrow, ncol)`."""
        return (self._nrow, self._ncol)

    @property
    def numel(self):
        r"""Number of entries including structural zeros."""
        return self._nrow * self._ncol

    @property
    def nnz(self):
        r"""Number of structurally nonzero entries."""
        return len(self._row)

    @property
    def colind(self):
        return self._colind

    @property
    def row(self):
        return self._row

    def is_dense(self):
        return self.nnz == self.numel

    def is_scalar(self):
        return self.shape == (1, 1)

    def is_empty(self):
        r"""Whether the pattern has no entries at all (zero rows or columns)."""
        return self.numel == 0

    def is_reshape_compatible(self, other):
        r"""Whether nonzero buffers of `self` and `other` are interchangeable."""
        return self.nnz == other.nnz

    def get_col(self):
        r"""Column index of each nonzero."""
        return np.repeat(np.arange(self._ncol), np.diff(self._colind))

    def triplets(self):
        r"""Return `(rows, cols)` of all nonzeros in nonzero order."""
        return self._row.copy(), self.get_col()

    def get_nz(self, r, c):
        r"""Nonzero index of entry `(r, c)`, or `-1` for a structural zero."""
        if not (0 <= r < self._nrow and 0 <= c < self._ncol):
            raise IndexError("Entry (%d, %d) out of range for shape %dx%d."
                             % (r, c, self._nrow, self._ncol))
        start, stop = self._colind[c], self._colind[c+1]
        k = np.searchsorted(self._row[start:stop], r)
        if start + k < stop and self._row[start + k] == r:
            return int(start + k)
        return -1

    def reshape(self, nrow, ncol):
        r"""Pattern of the same entries in a matrix of a different shape.

        Entries keep their column-major linear index, so the nonzero order is
        unchanged.
        """
        nrow, ncol = int(nrow), int(ncol)
        if nrow * ncol != self.numel:
            raise StructureError("Cannot reshape %dx%d into %dx%d."
                                 % (self._nrow, self._ncol, nrow, ncol))
        if (nrow, ncol) == self.shape:
            return self
        if self.is_dense():
            return Sparsity.dense(nrow, ncol)
        lin = self.get_col() * self._nrow + self._row
        return Sparsity.from_triplets(nrow, ncol, lin % nrow, lin // nrow)

    def sub(self, rows, cols):
        r"""Intersect the pattern with the block addressed by `rows` and `cols`.

        Args:
            rows:   Sequence of (distinct) row indices.
            cols:   Sequence of (distinct) column indices.

        @return Tuple `(sp, mapping)`, where `sp` is the `len(rows) x
            len(cols)` pattern of the addressed entries that are structural
            nonzeros of `self`, and `mapping[k]` is the nonzero index in
            `self` that the `k`'th nonzero of `sp` was taken from.
        """
        rows = list(rows)
        cols = list(cols)
        out_rows = []
        out_colind = [0]
        mapping = []
        for c in cols:
            start, stop = self._colind[c], self._colind[c+1]
            lookup = dict((int(r), start + k)
                          for k, r in enumerate(self._row[start:stop]))
            for i, r in enumerate(rows):
                k = lookup.get(r)
                if k is not None:
                    out_rows.append(i)
                    mapping.append(k)
            out_colind.append(len(out_rows))
        sp = Sparsity(len(rows), len(cols), out_colind, out_rows)
        return sp, np.array(mapping, dtype=np.int64)

    def densify(self, nz):
        r"""Turn a buffer of nonzero values into a dense 2D array."""
        nz = np.asarray(nz)
        dtype = nz.dtype if nz.dtype == object else float
        out = np.zeros(self.shape, dtype=dtype)
        if self.nnz:
            out[self._row, self.get_col()] = nz
        return out

    def nonzeros(self, dense):
        r"""Extract the nonzero values (in nonzero order) from a dense array."""
        dense = np.asarray(dense)
        if dense.ndim < 2:
            dense = dense.reshape(self.shape, order='F')
        if dense.shape != self.shape:
            raise ValueError("Expected a %dx%d array, got shape %s."
                             % (self._nrow, self._ncol, dense.shape))
        return dense[self._row, self.get_col()]

    def to_scipy(self):
        r"""Return a SciPy CSC matrix with ones at the nonzeros."""
        return sparse.csc_matrix(
            (np.ones(self.nnz), self._row, self._colind), shape=self.shape
        )

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, Sparsity):
            return NotImplemented
        return (self.shape == other.shape
                and np.array_equal(self._colind, other._colind)
                and np.array_equal(self._row, other._row))

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        if self._hash is None:
            self._hash = hash((self._nrow, self._ncol, self._colind.tobytes(),
                               self._row.tobytes()))
        return self._hash

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        kind = "dense" if self.is_dense() else "nnz=%d" % self.nnz
        return "Sparsity(%dx%d, %s)" % (self._nrow, self._ncol, kind)


@functools.lru_cache(maxsize=256)
def _dense(nrow, ncol):
    return Sparsity(nrow, ncol, np.arange(ncol + 1) * nrow,
                    np.tile(np.arange(nrow), ncol))
