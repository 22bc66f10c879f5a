from typing import Iterable, Iterator, Tuple, Union as PyUnion
from .errors import MalformedProofError


class Nibbles(object):
    """Immutable sequence of 4-bit values, the path of a node in a hexary trie.

    Comparison is by value: two paths are equal when they have the same length and the same nibbles.
    """
    __slots__ = ('_v',)

    _v: Tuple[int, ...]

    def __init__(self, values: Iterable[int] = ()):
        v = tuple(values)
        for n in v:
            if not 0 <= n <= 0xf:
                raise ValueError("not a nibble: %r" % n)
        self._v = v

    @staticmethod
    def from_bytes(data: bytes) -> "Nibbles":
        out = []
        for b in bytes(data):
            out.append(b >> 4)
            out.append(b & 0xf)
        return Nibbles(out)

    def to_bytes(self) -> bytes:
        if len(self._v) % 2 != 0:
            raise ValueError("cannot pack odd number of nibbles (%d) into bytes" % len(self._v))
        return bytes((self._v[i] << 4) | self._v[i+1] for i in range(0, len(self._v), 2))

    def __len__(self) -> int:
        return len(self._v)

    def __iter__(self) -> Iterator[int]:
        return iter(self._v)

    def __getitem__(self, i: PyUnion[int, slice]):
        if isinstance(i, slice):
            return Nibbles(self._v[i])
        return self._v[i]

    def __eq__(self, other) -> bool:
        if not isinstance(other, Nibbles):
            return NotImplemented
        return self._v == other._v

    def __hash__(self) -> int:
        return hash(self._v)

    def __repr__(self) -> str:
        return "Nibbles(0x%s)" % self.hex()

    def hex(self) -> str:
        return ''.join('%x' % n for n in self._v)

    def append(self, nibble: int) -> "Nibbles":
        return Nibbles(self._v + (nibble,))

    def extend(self, other: Iterable[int]) -> "Nibbles":
        return Nibbles(self._v + tuple(other))

    def pop_front(self) -> Tuple[int, "Nibbles"]:
        if len(self._v) == 0:
            raise IndexError("pop from empty nibble path")
        return self._v[0], Nibbles(self._v[1:])

    def truncate_back(self, n: int) -> "Nibbles":
        """Drop the last n nibbles"""
        if n > len(self._v):
            raise ValueError("cannot truncate %d nibbles off a path of %d" % (n, len(self._v)))
        return Nibbles(self._v[:len(self._v)-n])

    def startswith(self, prefix: "Nibbles") -> bool:
        return self._v[:len(prefix)] == prefix._v

    def common_prefix_len(self, other: "Nibbles") -> int:
        max_common = min(len(self._v), len(other._v))
        for i in range(max_common):
            if self._v[i] != other._v[i]:
                return i
        return max_common


# Hex-prefix encoding of leaf and extension paths.
# The first nibble of the encoded path is a flag:
#
# hex char    bits    |    node type partial     path length
# ----------------------------------------------------------
# 0        0000    |       extension              even
# 1        0001    |       extension              odd
# 2        0010    |   terminating (leaf)         even
# 3        0011    |   terminating (leaf)         odd

def encode_hex_prefix(path: Nibbles, leaf: bool) -> bytes:
    flag = 0b0010 if leaf else 0
    if len(path) % 2 == 1:
        first = ((flag | 0b0001) << 4) | path[0]
        path = path[1:]
    else:
        first = flag << 4
    return bytes([first]) + path.to_bytes()


def decode_hex_prefix(encoded_path: bytes) -> Tuple[Nibbles, bool]:
    if len(encoded_path) == 0:
        raise MalformedProofError("empty hex-prefix encoded path")
    flag = encoded_path[0] >> 4
    if flag > 3:
        raise MalformedProofError("invalid hex-prefix flag nibble: %d" % flag)
    leaf = flag & 0b0010 != 0
    rest = Nibbles.from_bytes(encoded_path[1:])
    if flag & 0b0001:
        return Nibbles((encoded_path[0] & 0xf,)).extend(rest), leaf
    if encoded_path[0] & 0xf != 0:
        raise MalformedProofError("non-zero padding in even-length hex-prefix path")
    return rest, leaf
