from typing import Dict, List, Tuple, TypedDict
from . import encode_hex
from .params import EMPTY_CODE_HASH
from .partial_trie import PartialTrie
from .types import Address, BlockMetadata, Bytes32


def contract_codes() -> Dict[Bytes32, bytes]:
    # accounts without code refer to the empty code hash, it is never fetched
    return {Bytes32(EMPTY_CODE_HASH): b""}


class StorageTrieData(TypedDict):
    # keccak256 of the account address (0x prefixed + hex encoded)
    account_key: str
    trie: dict


# This is the JSON object handed to the witness generator.
# Tries are nested node objects, see PartialTrie.to_obj.
class WitnessBundleData(TypedDict):
    # raw signed transactions, in block order (0x prefixed + hex encoded)
    signed_txns: List[str]
    block_metadata: dict
    state_trie: dict
    storage_tries: List[StorageTrieData]
    # dict: hash -> code  (key and values are 0x prefixed + hex encoded)
    contract_code: Dict[str, str]
    # [address, amount in wei]
    withdrawals: List[Tuple[str, str]]
    expected_state_root: str


class WitnessBundle(object):
    """Everything the generator needs to execute a block without access to the full state"""
    signed_txns: List[bytes]
    metadata: BlockMetadata
    state_trie: PartialTrie
    # (keccak256(address), storage trie), for every account with touched storage
    storage_tries: List[Tuple[Bytes32, PartialTrie]]
    contract_code: Dict[Bytes32, bytes]
    withdrawals: List[Tuple[Address, int]]
    expected_state_root: Bytes32

    def __init__(self, signed_txns: List[bytes], metadata: BlockMetadata, state_trie: PartialTrie,
                 storage_tries: List[Tuple[Bytes32, PartialTrie]], contract_code: Dict[Bytes32, bytes],
                 withdrawals: List[Tuple[Address, int]], expected_state_root: Bytes32):
        self.signed_txns = signed_txns
        self.metadata = metadata
        self.state_trie = state_trie
        self.storage_tries = storage_tries
        self.contract_code = contract_code
        self.withdrawals = withdrawals
        self.expected_state_root = expected_state_root

    def to_obj(self) -> WitnessBundleData:
        return WitnessBundleData(
            signed_txns=[encode_hex(tx) for tx in self.signed_txns],
            block_metadata=self.metadata.to_obj(),
            state_trie=self.state_trie.to_obj(),
            storage_tries=[StorageTrieData(account_key=encode_hex(k), trie=t.to_obj()) for k, t in self.storage_tries],
            contract_code={encode_hex(k): encode_hex(v) for k, v in self.contract_code.items()},
            # amounts can exceed 2**53, keep them as decimal strings for JSON consumers
            withdrawals=[(encode_hex(addr), str(amount)) for addr, amount in self.withdrawals],
            expected_state_root=encode_hex(self.expected_state_root),
        )
