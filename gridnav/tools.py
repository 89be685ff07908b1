# Copyright 2021 Nathan Wendt
"""Tools for decoding grid description sections."""

from collections import namedtuple


class NamedFields:
    """Parse a flat integer array but provide named fields.

    Modeled on the `NamedStruct` class from MetPy, with array positions
    in place of struct format codes.
    """

    def __init__(self, info, tuple_name=None):
        """Initialize the NamedFields.

        Parameters
        ----------
        info : list of tuple
            Entries of ``(name, position)`` or ``(name, position, converter)``.
            Positions are zero-based indices into the parameter array.

        tuple_name : str, optional
            Name of the namedtuple produced by `unpack`.
        """
        if tuple_name is None:
            tuple_name = 'NamedFields'
        names = [i[0] for i in info]
        self.positions = [i[1] for i in info]
        self.converters = {}
        for ind, i in enumerate(info):
            if len(i) > 2:
                self.converters[ind] = i[-1]
        self._tuple = namedtuple(tuple_name, ' '.join(names))
        self.size = max(self.positions) + 1

    def _create(self, items):
        if self.converters:
            items = list(items)
            for ind, conv in self.converters.items():
                items[ind] = conv(items[ind])
        return self.make_tuple(*items)

    def make_tuple(self, *args, **kwargs):
        """Construct the underlying tuple from values."""
        return self._tuple(*args, **kwargs)

    def unpack(self, values):
        """Parse a sequence of integers and return a namedtuple."""
        if len(values) < self.size:
            raise ValueError(f'Need at least {self.size} values, got {len(values)}.')
        return self._create(values[pos] for pos in self.positions)

    def pack(self, length=None, fill=0, **kwargs):
        """Place named integer values at their positions in a new list."""
        if length is None:
            length = self.size
        values = [fill] * length
        t = self.make_tuple(**kwargs)
        for pos, value in zip(self.positions, t):
            values[pos] = value
        return values
