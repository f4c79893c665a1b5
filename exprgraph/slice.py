r"""@package exprgraph.slice

Slice descriptors addressing a set of indices along one axis.
"""

import numbers


__all__ = [
    "Slice",
]


class Slice(object):
    r"""Start/stop/step triple along one axis.

    The addressed indices follow the slicing rules of Python and NumPy:
    negative `start` and `stop` count from the end, bounds outside the axis
    are clamped and `stop=None` means "up to the end" (or the beginning for
    negative steps).
    """

    def __init__(self, start=None, stop=None, step=1):
        if step is None:
            step = 1
        if step == 0:
            raise ValueError("Slice step cannot be zero.")
        ## First index (or `None` for the natural beginning).
        self.start = start
        ## Index one past the last (or `None` for the natural end).
        self.stop = stop
        ## Increment between consecutive indices.
        self.step = step

    @classmethod
    def create(cls, key):
        r"""Convert an integer, a Python `slice` or a Slice into a Slice.

        An integer `i` addresses just that one index. Negative integers count
        from the end; the index is only resolved in get_all().
        """
        if isinstance(key, Slice):
            return key
        if isinstance(key, slice):
            return cls(key.start, key.stop, key.step)
        if isinstance(key, numbers.Integral):
            return _IndexSlice(int(key))
        raise TypeError("Cannot create a slice from %r." % (key,))

    def get_all(self, length):
        r"""Return the list of indices this slice addresses on an axis."""
        return list(range(*slice(self.start, self.stop, self.step).indices(length)))

    def is_full(self, length):
        r"""Whether the slice addresses all of `range(length)` in order."""
        return self.get_all(length) == list(range(length))

    def __eq__(self, other):
        if not isinstance(other, Slice):
            return NotImplemented
        if type(self) is not type(other):
            return False
        return ((self.start, self.stop, self.step)
                == (other.start, other.stop, other.step))

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        return hash((self.start, self.stop, self.step))

    def __str__(self):
        start = "" if self.start is None else self.start
        stop = "" if self.stop is None else self.stop
        if self.step == 1:
            return "%s:%s" % (start, stop)
        return "%s:%s:%s" % (start, stop, self.step)

    def __repr__(self):
        return "Slice(%r, %r, %r)" % (self.start, self.stop, self.step)


class _IndexSlice(Slice):
    r"""Slice addressing a single (possibly negative) index."""
    def __init__(self, index):
        super(_IndexSlice, self).__init__(index, None, 1)

    def get_all(self, length):
        i = self.start + length if self.start < 0 else self.start
        if not 0 <= i < length:
            raise IndexError("Index %d out of range for axis of length %d."
                             % (self.start, length))
        return [i]

    def __str__(self):
        return "%d" % self.start

    def __repr__(self):
        return "Slice.create(%d)" % self.start
