"""Match values for P4 table keys.

A transformer returns one of these per match field of the table, in the
order the fields are declared in the P4Info. Values are already encoded
(see :py:mod:`p4control.core.bytes_utils`); they are copied unchanged into
the ``FieldMatch`` messages.
"""

from p4.v1 import p4runtime_pb2

from p4control.core.context import MatchKind


class Match:
    kind = None

    def field_match(self, field_id):
        """Builds the ``FieldMatch`` message for the field with id ``field_id``."""
        mf = p4runtime_pb2.FieldMatch()
        mf.field_id = field_id
        self._fill(mf)
        return mf

    def _fill(self, mf):
        raise NotImplementedError

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def __repr__(self):
        return "{}({})".format(type(self).__name__, ", ".join(
            "{}={!r}".format(k, v) for k, v in vars(self).items()))


class ExactMatch(Match):
    kind = MatchKind.exact

    def __init__(self, value):
        self.value = value

    def _fill(self, mf):
        mf.exact.value = self.value


class LpmMatch(Match):
    kind = MatchKind.lpm

    def __init__(self, value, prefix_len):
        self.value = value
        self.prefix_len = prefix_len

    def _fill(self, mf):
        mf.lpm.value = self.value
        mf.lpm.prefix_len = self.prefix_len


class TernaryMatch(Match):
    kind = MatchKind.ternary

    def __init__(self, value, mask):
        self.value = value
        self.mask = mask

    def _fill(self, mf):
        mf.ternary.value = self.value
        mf.ternary.mask = self.mask


class RangeMatch(Match):
    kind = MatchKind.range

    def __init__(self, low, high):
        self.low = low
        self.high = high

    def _fill(self, mf):
        mf.range.low = self.low
        mf.range.high = self.high


def from_field_match(mf):
    """Inverse of :py:meth:`Match.field_match`."""
    which = mf.WhichOneof('field_match_type')
    if which == 'exact':
        return ExactMatch(mf.exact.value)
    elif which == 'lpm':
        return LpmMatch(mf.lpm.value, mf.lpm.prefix_len)
    elif which == 'ternary':
        return TernaryMatch(mf.ternary.value, mf.ternary.mask)
    elif which == 'range':
        return RangeMatch(mf.range.low, mf.range.high)
    raise ValueError("Unsupported field match type '{}'".format(which))
