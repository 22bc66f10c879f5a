import pytest
import rlp
from blockwit import keccak_256, rlp_decode_list
from blockwit.assemble import assemble
from blockwit.errors import ConsistencyError
from blockwit.nibbles import Nibbles
from blockwit.params import EMPTY_CODE_HASH, GWEI
from blockwit.touched import AccountState
from blockwit.types import Bytes32, Withdrawal
from .chain import FakeAccount, FakeSource, addr, slot

CODE = bytes.fromhex("600160015500")


def background_accounts(n: int = 60) -> dict:
    # enough accounts to get a few levels of branches in the state trie
    return {addr(0x80 + i): FakeAccount(nonce=i, balance=10**18 + i) for i in range(n)}


def test_withdrawal_only_block():
    accounts = background_accounts()
    a = addr(0x80)
    src = FakeSource(accounts, withdrawals=[Withdrawal(a, 32)])
    bundle = assemble(src, 100)

    assert [(r[0], r[1]) for r in src.proof_requests] == [(a, [])]
    assert bundle.state_trie.hash() == src.pre_state_root
    assert bundle.signed_txns == []
    assert bundle.storage_tries == []
    assert bundle.withdrawals == [(a, 32 * GWEI)]
    assert bundle.expected_state_root == src.post_state_root
    assert bundle.contract_code == {Bytes32(EMPTY_CODE_HASH): b""}
    assert bundle.metadata.block_number == 100
    assert bundle.metadata.chain_id == 1


def test_withdrawal_to_new_account():
    accounts = background_accounts()
    fresh = addr(0x07)
    src = FakeSource(accounts, withdrawals=[Withdrawal(fresh, 1)])
    bundle = assemble(src, 100, withdrawal_unit=1)
    assert bundle.state_trie.hash() == src.pre_state_root
    assert bundle.state_trie.get(Nibbles.from_bytes(keccak_256(fresh))) is None
    assert bundle.withdrawals == [(fresh, 1)]


def storage_scenario():
    accounts = background_accounts()
    sender = addr(0x80)
    b = addr(0xbb)
    accounts[b] = FakeAccount(nonce=1, code=CODE, storage={1: 0x2a, 2: 7, 5: 99, 1000: 1})
    trace = {
        sender: AccountState(sender),
        b: AccountState(b, code=CODE, storage={slot(1): slot(0x2a)}),
    }
    return accounts, sender, b, trace


def test_touched_storage_slot():
    accounts, sender, b, trace = storage_scenario()
    src = FakeSource(accounts, txs=[(b'\x02\xf8raw-tx', trace)], chain_id=5)
    bundle = assemble(src, 100)

    assert bundle.signed_txns == [b'\x02\xf8raw-tx']
    assert bundle.metadata.chain_id == 5
    assert bundle.state_trie.hash() == src.pre_state_root
    assert len(bundle.storage_tries) == 1
    key, storage_trie = bundle.storage_tries[0]
    assert key == keccak_256(b)
    assert storage_trie.hash() == src.storage_tries[b].root_hash
    raw = storage_trie.get(Nibbles.from_bytes(keccak_256(slot(1))))
    assert rlp.decode(raw) == b'\x2a'
    assert bundle.contract_code[Bytes32(keccak_256(CODE))] == CODE

    # the sender has no storage, it gets no storage trie
    requested = {r[0]: r[1] for r in src.proof_requests}
    assert requested[sender] == []
    assert requested[b] == [slot(1)]


def test_extra_slots_are_fetched():
    accounts, sender, b, trace = storage_scenario()
    src = FakeSource(accounts, txs=[(b'\x01', trace)])
    missing = slot(12345)
    bundle = assemble(src, 100, {b: [slot(5), missing, slot(1)]})
    requested = {r[0]: r[1] for r in src.proof_requests}
    assert requested[b] == [slot(1), slot(5), missing]

    _, storage_trie = bundle.storage_tries[0]
    assert storage_trie.hash() == src.storage_tries[b].root_hash
    assert rlp.decode(storage_trie.get(Nibbles.from_bytes(keccak_256(slot(5))))) == bytes([99])
    assert storage_trie.get(Nibbles.from_bytes(keccak_256(missing))) is None


def test_storage_hash_mismatch():
    accounts, sender, b, trace = storage_scenario()

    class LyingSource(FakeSource):
        def get_proof(self, address, storage_keys, block_number):
            proof = super().get_proof(address, storage_keys, block_number)
            if address == b:
                return proof._replace(storage_hash=Bytes32(b'\x01' * 32))
            return proof

    src = LyingSource(accounts, txs=[(b'\x01', trace)])
    with pytest.raises(ConsistencyError):
        assemble(src, 100)


def test_storage_value_mismatch():
    accounts, sender, b, trace = storage_scenario()

    class LyingSource(FakeSource):
        def get_proof(self, address, storage_keys, block_number):
            proof = super().get_proof(address, storage_keys, block_number)
            storage_proof = [sp._replace(value=sp.value + 1) for sp in proof.storage_proof]
            return proof._replace(storage_proof=storage_proof)

    src = LyingSource(accounts, txs=[(b'\x01', trace)])
    with pytest.raises(ConsistencyError):
        assemble(src, 100)


def test_state_root_mismatch():
    accounts, sender, b, trace = storage_scenario()
    src = FakeSource(accounts, txs=[(b'\x01', trace)])
    src.pre_state_root = Bytes32(b'\x03' * 32)
    with pytest.raises(ConsistencyError):
        assemble(src, 100)


def test_chain_id_fallback():
    accounts = background_accounts()
    a = addr(0x81)
    src = FakeSource(accounts, txs=[(b'\x01', {a: AccountState(a)})], chain_id=10)
    h = next(iter(src.txs))
    info, trace = src.txs[h]
    src.txs[h] = (info._replace(chain_id=None), trace)
    bundle = assemble(src, 100)
    assert bundle.metadata.chain_id == 10


def test_bundle_to_obj():
    accounts, sender, b, trace = storage_scenario()
    src = FakeSource(accounts, txs=[(b'\x01\x02', trace)], withdrawals=[Withdrawal(sender, 5)])
    obj = assemble(src, 100).to_obj()
    assert obj['signed_txns'] == ['0x0102']
    assert obj['withdrawals'] == [('0x' + bytes(sender).hex(), str(5 * GWEI))]
    assert obj['storage_tries'][0]['account_key'] == '0x' + keccak_256(b).hex()
    assert obj['expected_state_root'] == '0x' + '77' * 32
    assert obj['state_trie']['type'] in ('branch', 'extension')


def test_account_leaf_in_state_trie():
    accounts, sender, b, trace = storage_scenario()
    src = FakeSource(accounts, txs=[(b'\x01', trace)])
    bundle = assemble(src, 100)
    raw = bundle.state_trie.get(Nibbles.from_bytes(keccak_256(b)))
    nonce, balance, storage_root, code_hash = rlp_decode_list(raw)
    assert int.from_bytes(nonce, 'big') == 1
    assert balance == b''
    assert storage_root == src.storage_tries[b].root_hash
    assert code_hash == keccak_256(CODE)


def test_extra_slots_for_untraced_account():
    accounts, sender, b, trace = storage_scenario()
    c = addr(0xcc)
    accounts[c] = FakeAccount(nonce=1, storage={3: 4})
    src = FakeSource(accounts, txs=[(b'\x01', trace)])
    bundle = assemble(src, 100, {c: [slot(3)]})

    requested = {r[0]: r[1] for r in src.proof_requests}
    assert requested[c] == [slot(3)]
    assert bundle.state_trie.hash() == src.pre_state_root
    storage_tries = dict(bundle.storage_tries)
    storage_trie = storage_tries[Bytes32(keccak_256(c))]
    assert storage_trie.hash() == src.storage_tries[c].root_hash
    assert rlp.decode(storage_trie.get(Nibbles.from_bytes(keccak_256(slot(3))))) == b'\x04'


def test_account_fields_mismatch():
    accounts, sender, b, trace = storage_scenario()

    class LyingSource(FakeSource):
        def get_proof(self, address, storage_keys, block_number):
            proof = super().get_proof(address, storage_keys, block_number)
            if address == sender:
                return proof._replace(nonce=proof.nonce + 1)
            return proof

    src = LyingSource(accounts, txs=[(b'\x01', trace)])
    with pytest.raises(ConsistencyError, match="leaf disagrees"):
        assemble(src, 100)
