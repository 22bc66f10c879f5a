import pytest
from blockwit import keccak_256
from blockwit.errors import GeneratorError, MissingSiblingError, RetryLimitExceeded
from blockwit.generator import GenerationResult
from blockwit.retry import RetryContext, prove_block_with_retries
from blockwit.touched import AccountState
from blockwit.types import Bytes32
from .chain import FakeAccount, FakeSource, addr, slot

B = addr(0xbb)


def source() -> FakeSource:
    accounts = {addr(0x80 + i): FakeAccount(nonce=1, balance=i) for i in range(20)}
    accounts[B] = FakeAccount(nonce=1, code=b'\x00', storage={1: 0x2a, 2: 3})
    trace = {addr(0x80): AccountState(addr(0x80)), B: AccountState(B, code=b'\x00', storage={slot(1): slot(0x2a)})}
    return FakeSource(accounts, txs=[(b'\x01', trace)])


class FlakyGenerator(object):
    """Reports a missing sibling for the first ``failures`` runs"""

    def __init__(self, failures: int, root: Bytes32):
        self.failures = failures
        self.root = root
        self.bundles = []

    def generate(self, bundle):
        self.bundles.append(bundle)
        if len(self.bundles) <= self.failures:
            raise MissingSiblingError(nibble=len(self.bundles) % 16, address=B, slot=1, depth=64)
        return GenerationResult(state_root_after=self.root)


def test_retries_until_complete():
    src = source()
    gen = FlakyGenerator(3, src.post_state_root)
    retries = []
    attempts = []
    result = prove_block_with_retries(src, gen, 100, max_attempts=10,
                                      on_attempt=lambda ctx: attempts.append(ctx.attempts),
                                      on_retry=lambda ctx, e, s: retries.append((e.nibble, s)))
    assert result.state_root_after == src.post_state_root
    assert attempts == [1, 2, 3, 4]
    assert len(gen.bundles) == 4

    ground = [s for _, s in retries]
    assert len(set(ground)) == 3
    for nibble, s in retries:
        # a depth 64 sibling hangs off the storage root
        assert keccak_256(s)[0] >> 4 == nibble

    # every attempt asks for all slots ground so far
    requested = [keys for a, keys, _ in src.proof_requests if a == B]
    assert requested[0] == [slot(1)]
    for i in range(1, 4):
        assert requested[i] == [slot(1)] + ground[:i]

    # the bundle of the final attempt carries the extra slots in the storage trie of B
    storage_trie = dict(gen.bundles[-1].storage_tries)[Bytes32(keccak_256(B))]
    assert storage_trie.hash() == src.storage_tries[B].root_hash


def test_other_errors_are_not_retried():
    class Broken(object):
        calls = 0

        def generate(self, bundle):
            Broken.calls += 1
            raise GeneratorError("out of gas")

    with pytest.raises(GeneratorError, match="out of gas"):
        prove_block_with_retries(source(), Broken(), 100)
    assert Broken.calls == 1


def test_retry_limit():
    src = source()
    gen = FlakyGenerator(100, src.post_state_root)
    with pytest.raises(RetryLimitExceeded):
        prove_block_with_retries(src, gen, 100, max_attempts=3)
    assert len(gen.bundles) == 3


def test_state_root_mismatch_is_reported():
    src = source()
    wrong = Bytes32(b'\x01' * 32)
    gen = FlakyGenerator(0, wrong)
    seen = []
    result = prove_block_with_retries(src, gen, 100, on_mismatch=lambda ctx, r, expected: seen.append((r, expected)))
    assert result.state_root_after == wrong
    assert seen == [(GenerationResult(wrong), src.post_state_root)]


def test_context_rejects_duplicate_slot():
    ctx = RetryContext(100)
    ctx.add_slot(B, slot(5))
    ctx.add_slot(B, slot(6))
    with pytest.raises(ValueError):
        ctx.add_slot(B, slot(5))
    assert ctx.extra_slots == {B: [slot(5), slot(6)]}
