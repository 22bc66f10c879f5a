from typing import List, Optional, Union as PyUnion
import rlp
from . import keccak_256, encode_hex, rlp_encode_list
from .errors import TrieError
from .nibbles import Nibbles, encode_hex_prefix
from .params import EMPTY_TRIE_ROOT
from .types import Bytes32


# A partial MPT: every node is either fully known, or replaced by a placeholder that only carries its hash.
# The root hash is computed the same way as for a complete trie, since a placeholder hashes to its digest.

class Node(object):
    def to_obj(self) -> dict:
        raise NotImplementedError


class EmptyNode(Node):
    def to_obj(self) -> dict:
        return {'type': 'empty'}


EMPTY = EmptyNode()


class HashNode(Node):
    digest: Bytes32

    def __init__(self, digest: bytes):
        self.digest = Bytes32(digest)

    def to_obj(self) -> dict:
        return {'type': 'hash', 'hash': encode_hex(self.digest)}


class LeafNode(Node):
    path: Nibbles
    value: bytes  # raw leaf value, e.g. the RLP encoded account or storage value

    def __init__(self, path: Nibbles, value: bytes):
        self.path = path
        self.value = value

    def to_obj(self) -> dict:
        return {'type': 'leaf', 'path': self.path.hex(), 'value': encode_hex(self.value)}


class ExtensionNode(Node):
    path: Nibbles
    child: Node

    def __init__(self, path: Nibbles, child: Node):
        self.path = path
        self.child = child

    def to_obj(self) -> dict:
        return {'type': 'extension', 'path': self.path.hex(), 'child': self.child.to_obj()}


class BranchNode(Node):
    children: List[Node]

    def __init__(self):
        self.children = [EMPTY] * 16

    def to_obj(self) -> dict:
        return {'type': 'branch', 'children': [c.to_obj() for c in self.children]}


def node_structure(node: Node) -> PyUnion[bytes, list]:
    """The node as nested lists of byte strings, ready to be RLP encoded"""
    if isinstance(node, EmptyNode):
        return b""
    if isinstance(node, LeafNode):
        return [encode_hex_prefix(node.path, True), node.value]
    if isinstance(node, ExtensionNode):
        return [encode_hex_prefix(node.path, False), node_ref(node.child)]
    if isinstance(node, BranchNode):
        return [node_ref(c) for c in node.children] + [b""]
    raise TrieError("hash placeholder has no structure")


def node_ref(node: Node) -> PyUnion[bytes, list]:
    """How a parent refers to the node: embedded in-place if the encoding is shorter than 32 bytes, by hash otherwise"""
    if isinstance(node, HashNode):
        return bytes(node.digest)
    if isinstance(node, EmptyNode):
        return b""
    structure = node_structure(node)
    encoded = rlp_encode_list(structure)
    if len(encoded) < 32:
        return structure
    return keccak_256(encoded)


def encode_node(node: Node) -> bytes:
    return rlp.encode(node_structure(node))


def node_hash(node: Node) -> Bytes32:
    if isinstance(node, HashNode):
        return node.digest
    if isinstance(node, EmptyNode):
        return Bytes32(EMPTY_TRIE_ROOT)
    return Bytes32(keccak_256(encode_node(node)))


# Places a path segment on top of a node, merging it into the node if that node has a path of its own.
def _join(prefix: Nibbles, node: Node) -> Node:
    if len(prefix) == 0:
        return node
    if isinstance(node, ExtensionNode):
        return ExtensionNode(prefix.extend(node.path), node.child)
    if isinstance(node, LeafNode):
        return LeafNode(prefix.extend(node.path), node.value)
    return ExtensionNode(prefix, node)


Payload = PyUnion[bytes, HashNode]


def _place(rest: Nibbles, payload: Payload) -> Node:
    if isinstance(payload, HashNode):
        return _join(rest, payload)
    return LeafNode(rest, payload)


def _insert(node: Node, rest: Nibbles, payload: Payload) -> Node:
    # Placeholders get superseded by anything inserted at or below them:
    # the inserted data is more detailed, and the rest of the subtree is expected to follow.
    if isinstance(node, (EmptyNode, HashNode)):
        return _place(rest, payload)

    # A placeholder never replaces a node that is already known, it can only hash to the same digest.
    if isinstance(payload, HashNode) and len(rest) == 0:
        return node

    if isinstance(node, BranchNode):
        if len(rest) == 0:
            raise TrieError("cannot store a value in a branch node")
        nibble, sub = rest.pop_front()
        node.children[nibble] = _insert(node.children[nibble], sub, payload)
        return node

    if isinstance(node, LeafNode):
        if node.path == rest:
            return _place(rest, payload)
        c = node.path.common_prefix_len(rest)
        if c == len(rest) or c == len(node.path):
            raise TrieError("path %s conflicts with leaf at %s" % (rest, node.path))
        branch = BranchNode()
        branch.children[node.path[c]] = LeafNode(node.path[c+1:], node.value)
        branch.children[rest[c]] = _place(rest[c+1:], payload)
        return _join(rest[:c], branch)

    if isinstance(node, ExtensionNode):
        c = node.path.common_prefix_len(rest)
        if c == len(node.path):
            return _join(node.path, _insert(node.child, rest[c:], payload))
        if c == len(rest):
            raise TrieError("path %s ends inside extension %s" % (rest, node.path))
        branch = BranchNode()
        branch.children[node.path[c]] = _join(node.path[c+1:], node.child)
        branch.children[rest[c]] = _place(rest[c+1:], payload)
        return _join(rest[:c], branch)

    raise TrieError("unknown node type %s" % type(node).__name__)


class PartialTrie(object):
    root: Node

    def __init__(self, root: Node = EMPTY):
        self.root = root

    def insert(self, path: Nibbles, value: bytes) -> None:
        """Write a leaf value at the given full path"""
        self.root = _insert(self.root, path, bytes(value))

    def insert_hash(self, path: Nibbles, digest: bytes) -> None:
        """Place a hash placeholder at the given node position"""
        self.root = _insert(self.root, path, HashNode(digest))

    def get(self, path: Nibbles) -> Optional[bytes]:
        node = self.root
        rest = path
        while True:
            if isinstance(node, LeafNode):
                return node.value if node.path == rest else None
            elif isinstance(node, ExtensionNode):
                if not rest.startswith(node.path):
                    return None
                rest = rest[len(node.path):]
                node = node.child
            elif isinstance(node, BranchNode):
                if len(rest) == 0:
                    return None
                nibble, rest = rest.pop_front()
                node = node.children[nibble]
            else:
                # empty, or not known locally
                return None

    def hash(self) -> Bytes32:
        return node_hash(self.root)

    def to_obj(self) -> dict:
        return self.root.to_obj()
