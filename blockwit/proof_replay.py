from collections import deque
from typing import Deque, Sequence, Set, Union as PyUnion
import rlp
from .errors import MalformedProofError, ProofMismatchError
from .nibbles import Nibbles, decode_hex_prefix
from .partial_trie import PartialTrie

# A decoded node reference: a 32 byte hash, an empty string, or a small node embedded in-place.
Ref = PyUnion[bytes, list]


def decode_proof_node(raw: bytes) -> list:
    try:
        node = rlp.decode(bytes(raw))
    except rlp.DecodingError as e:
        raise MalformedProofError("cannot decode proof node 0x%s" % bytes(raw).hex()) from e
    if not isinstance(node, list):
        raise MalformedProofError("proof node is not a list: 0x%s" % bytes(raw).hex())
    return node


def _insert_ref(trie: PartialTrie, prefix: Nibbles, ref: Ref) -> None:
    if isinstance(ref, list):
        _insert_embedded(trie, prefix, ref)
    elif len(ref) == 32:
        trie.insert_hash(prefix, ref)
    else:
        raise MalformedProofError("invalid node reference of %d bytes" % len(ref))


# Embedded nodes are known in full, so they are expanded instead of turned into placeholders.
def _insert_embedded(trie: PartialTrie, prefix: Nibbles, node: list) -> None:
    if len(node) == 17:
        for i in range(16):
            if node[i] != b"":
                _insert_ref(trie, prefix.append(i), node[i])
    elif len(node) == 2 and isinstance(node[0], bytes):
        path, leaf = decode_hex_prefix(node[0])
        if leaf:
            trie.insert(prefix.extend(path), node[1])
        else:
            _insert_ref(trie, prefix.extend(path), node[1])
    else:
        raise MalformedProofError("unexpected embedded node with %d elements" % len(node))


def _descend_embedded(pending: Deque[list], ref: list) -> None:
    # Some proof producers list embedded nodes as separate entries as well, skip the duplicate.
    if len(pending) > 0 and pending[0] == ref:
        pending.popleft()
    pending.appendleft(ref)


def insert_proof(trie: PartialTrie, key: bytes, proof: Sequence[bytes], value_exists: bool,
                 visited: Set[Nibbles]) -> None:
    """Replay a Merkle proof for ``key`` into ``trie``.

    The proof is the list of RLP encoded trie nodes from the root towards ``key``, as returned by eth_getProof.
    Every sibling the proof reveals is inserted as a hash placeholder, and the leaf value is inserted if
    ``value_exists``. When the key is absent, only the skeleton the proof reveals is inserted.

    ``visited`` is shared between all proofs merged into the same trie: it holds the node positions that already
    have a placeholder, or that an earlier proof descended through. Placeholders are never written there,
    so a later proof cannot hide data an earlier proof expanded.
    """
    remaining = Nibbles.from_bytes(key)
    current_prefix = Nibbles()
    pending: Deque[list] = deque(decode_proof_node(raw) for raw in proof)
    reached = False

    while len(pending) > 0:
        node = pending.popleft()

        if len(node) == 17:
            if len(remaining) == 0:
                raise ProofMismatchError("proof continues with a branch after the full key %s" % key.hex())
            nibble, remaining = remaining.pop_front()
            for i in range(16):
                if i == nibble or node[i] == b"":
                    continue
                child_prefix = current_prefix.append(i)
                if child_prefix in visited:
                    continue
                _insert_ref(trie, child_prefix, node[i])
                visited.add(child_prefix)
            current_prefix = current_prefix.append(nibble)
            ref = node[nibble]
            if isinstance(ref, list):
                _descend_embedded(pending, ref)
            elif len(pending) == 0 and ref != b"" and current_prefix not in visited:
                # proof stops here, the slot towards the key remains a placeholder
                _insert_ref(trie, current_prefix, ref)
            visited.add(current_prefix)

        elif len(node) == 2:
            if not isinstance(node[0], bytes):
                raise MalformedProofError("leaf/extension path is not a byte string")
            path, leaf = decode_hex_prefix(node[0])
            if remaining.common_prefix_len(path) < len(path):
                if value_exists or len(pending) > 0:
                    raise ProofMismatchError("proof path %s diverges from key %s at %s"
                                             % (path, key.hex(), current_prefix))
                # Proof of absence: the key branches off inside this node. Keep the node itself,
                # it is needed to recompute the root, and to insert the key later on.
                if leaf:
                    trie.insert(current_prefix.extend(path), node[1])
                else:
                    _insert_ref(trie, current_prefix.extend(path), node[1])
                return
            remaining = remaining[len(path):]
            current_prefix = current_prefix.extend(path)
            if leaf:
                if len(pending) > 0:
                    raise MalformedProofError("leaf node before the end of the proof")
                if len(remaining) != 0:
                    raise ProofMismatchError("leaf at %s is above the full key %s" % (current_prefix, key.hex()))
                if value_exists:
                    trie.insert(current_prefix, node[1])
                reached = True
            else:
                ref = node[1]
                if isinstance(ref, list):
                    _descend_embedded(pending, ref)
                elif len(pending) == 0:
                    _insert_ref(trie, current_prefix, ref)
        else:
            raise MalformedProofError("unexpected number of elements in proof node: %d" % len(node))

    if value_exists and not reached:
        raise ProofMismatchError("proof for %s ends before reaching a leaf" % key.hex())
