from typing import Dict, List, Optional, Sequence, Set, Tuple
import rlp
from . import keccak_256, encode_hex, rlp_decode_list
from .errors import ConsistencyError
from .external import AccountProof, ExternalSource, StorageProof
from .nibbles import Nibbles
from .params import GWEI
from .partial_trie import PartialTrie
from .proof_replay import insert_proof
from .touched import AccountState, collect_touched_state
from .types import Address, BlockMetadata, Bytes32, uint64, uint256
from .witness import WitnessBundle, contract_codes

# address -> extra storage slots to fetch, on top of the ones the transactions touch
SlotAugmentations = Dict[Address, Sequence[Bytes32]]


def build_storage_trie(storage_hash: Bytes32, storage_proof: Sequence[StorageProof]) -> PartialTrie:
    """Replay all storage proofs of one account, and check them against the storage root claimed by the node"""
    trie = PartialTrie()
    visited: Set[Nibbles] = set()
    for sp in storage_proof:
        path_key = keccak_256(sp.key)
        insert_proof(trie, path_key, sp.proof, sp.value != 0, visited)
        if sp.value != 0:
            raw = trie.get(Nibbles.from_bytes(path_key))
            if raw is None:
                raise ConsistencyError("storage slot %s missing from reconstructed trie" % encode_hex(sp.key))
            try:
                decoded = rlp.decode(raw)
            except rlp.DecodingError as e:
                raise ConsistencyError("storage slot %s: undecodable value 0x%s" % (encode_hex(sp.key), raw.hex())) from e
            if not isinstance(decoded, bytes):
                raise ConsistencyError("storage slot %s: value is not a byte string" % encode_hex(sp.key))
            got = int.from_bytes(decoded, byteorder='big')
            if got != sp.value:
                raise ConsistencyError("storage slot %s: trie has %d, node reported %d"
                                       % (encode_hex(sp.key), got, sp.value))
    if trie.hash() != storage_hash:
        raise ConsistencyError("storage root mismatch: reconstructed %s, node reported %s"
                               % (encode_hex(trie.hash()), encode_hex(storage_hash)))
    return trie


def check_account_leaf(state_trie: PartialTrie, key: Bytes32, proof: AccountProof) -> None:
    raw = state_trie.get(Nibbles.from_bytes(key))
    if raw is None:
        raise ConsistencyError("account 0x%s missing from reconstructed trie" % proof.address.hex())
    try:
        fields = rlp_decode_list(raw)
    except rlp.DecodingError as e:
        raise ConsistencyError("account 0x%s: undecodable leaf 0x%s" % (proof.address.hex(), raw.hex())) from e
    if len(fields) != 4:
        raise ConsistencyError("account 0x%s: leaf has %d fields" % (proof.address.hex(), len(fields)))
    nonce, balance, storage_root, code_hash = fields
    if (int.from_bytes(nonce, byteorder='big') != proof.nonce
            or int.from_bytes(balance, byteorder='big') != proof.balance
            or storage_root != proof.storage_hash or code_hash != proof.code_hash):
        raise ConsistencyError("account 0x%s: leaf disagrees with the reported account fields" % proof.address.hex())


def assemble(src: ExternalSource, block_number: int, extra_slots: Optional[SlotAugmentations] = None,
             withdrawal_unit: int = GWEI) -> WitnessBundle:
    """Fetch and verify all state the block touches, as of the end of the previous block"""
    if extra_slots is None:
        extra_slots = dict()
    block = src.get_block(block_number)
    pre_number = block_number - 1

    state_trie = PartialTrie()
    visited: Set[Nibbles] = set()

    # withdrawals credit accounts without any transaction touching them
    for w in block.withdrawals or []:
        proof = src.get_proof(w.address, [], pre_number)
        insert_proof(state_trie, keccak_256(w.address), proof.account_proof, not proof.is_empty(), visited)

    signed_txns: List[bytes] = []
    traces = []
    chain_id = None
    for tx_hash in block.transactions:
        tx = src.get_transaction(tx_hash)
        if chain_id is None:
            chain_id = tx.chain_id
        traces.append(src.trace_prestate(tx_hash))
        signed_txns.append(tx.raw)
    if chain_id is None:
        chain_id = src.chain_id()

    # extra slots can belong to accounts no transaction traced, those are fetched as well
    accounts = collect_touched_state(traces + [{address: AccountState(address) for address in extra_slots}])

    code_map = contract_codes()
    storage_tries: List[Tuple[Bytes32, PartialTrie]] = []
    for address, account in accounts.items():
        storage_keys = list((account.storage or {}).keys())
        for slot in extra_slots.get(address, ()):
            if slot not in storage_keys:
                storage_keys.append(slot)
        proof = src.get_proof(address, storage_keys, pre_number)
        key = Bytes32(keccak_256(address))
        insert_proof(state_trie, key, proof.account_proof, not proof.is_empty(), visited)
        if not proof.is_empty():
            check_account_leaf(state_trie, key, proof)
        if len(storage_keys) > 0:
            storage_tries.append((key, build_storage_trie(proof.storage_hash, proof.storage_proof)))
        if account.code is not None:
            code_map[Bytes32(keccak_256(account.code))] = account.code

    pre_block = src.get_block(pre_number)
    if state_trie.hash() != pre_block.state_root:
        raise ConsistencyError("state root mismatch: reconstructed %s, block %d has %s"
                               % (encode_hex(state_trie.hash()), pre_number, encode_hex(pre_block.state_root)))

    metadata = BlockMetadata(
        beneficiary=block.beneficiary,
        timestamp=uint64(block.timestamp),
        block_number=uint64(block.number),
        difficulty=uint256(block.difficulty),
        random=block.random,
        gas_limit=uint64(block.gas_limit),
        chain_id=uint256(chain_id),
        base_fee=uint256(block.base_fee),
    )
    withdrawals = [(w.address, w.amount * withdrawal_unit) for w in block.withdrawals or []]

    return WitnessBundle(
        signed_txns=signed_txns,
        metadata=metadata,
        state_trie=state_trie,
        storage_tries=storage_tries,
        contract_code=code_map,
        withdrawals=withdrawals,
        expected_state_root=block.state_root,
    )
