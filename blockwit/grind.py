import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Callable, Iterable, Optional
from . import keccak_256
from .errors import GeneratorError
from .nibbles import Nibbles
from .params import DEFAULT_GRIND_BATCH, NIBBLES_PER_KEY
from .types import Bytes32


def slot_key(slot: int) -> Bytes32:
    return Bytes32(slot.to_bytes(length=32, byteorder='big'))


def sibling_target(slot: int, nibble: int, depth: int) -> Nibbles:
    """Trie path of the missing sibling: the hashed slot path cut ``depth`` nibbles short, then the selector nibble.

    Any storage key whose hash starts with this path lands in the sibling subtree,
    and fetching it forces the sibling into the witness.
    """
    if not 0 <= nibble <= 0xf:
        raise GeneratorError("selector nibble out of range: %d" % nibble)
    if not 1 <= depth <= NIBBLES_PER_KEY:
        raise GeneratorError("sibling depth out of range: %d" % depth)
    path = Nibbles.from_bytes(keccak_256(slot_key(slot)))
    return path.truncate_back(depth).append(nibble)


def prefix_matcher(target: Nibbles) -> Callable[[bytes], bool]:
    # compare whole bytes, and the odd trailing nibble separately
    whole = target[:len(target) - len(target) % 2].to_bytes()
    odd = target[len(target)-1] if len(target) % 2 == 1 else None

    def matches(candidate: bytes) -> bool:
        h = keccak_256(candidate)
        if not h.startswith(whole):
            return False
        return odd is None or (h[len(whole)] >> 4) == odd

    return matches


def _grind_batch(target_hex: str, count: int) -> Optional[bytes]:
    matches = prefix_matcher(Nibbles(int(c, 16) for c in target_hex))
    for _ in range(count):
        candidate = os.urandom(32)
        if matches(candidate):
            return candidate
    return None


def grind(target: Nibbles, exclude: Iterable[bytes] = (), rand_bytes: Callable[[int], bytes] = os.urandom,
          workers: int = 1, batch: int = DEFAULT_GRIND_BATCH) -> Bytes32:
    """Brute-force a 32 byte key whose keccak256 hash starts with the target path.

    Takes about 16**len(target) samples. Keys in ``exclude`` are never returned.
    With more than one worker, batches of samples are tried in separate processes, and the first match wins.
    """
    excluded = set(bytes(x) for x in exclude)
    if workers <= 1:
        matches = prefix_matcher(target)
        while True:
            candidate = rand_bytes(32)
            if matches(candidate) and candidate not in excluded:
                return Bytes32(candidate)

    with ProcessPoolExecutor(max_workers=workers) as pool:
        while True:
            futures = [pool.submit(_grind_batch, target.hex(), batch) for _ in range(workers)]
            for fut in as_completed(futures):
                candidate = fut.result()
                if candidate is not None and candidate not in excluded:
                    for f in futures:
                        f.cancel()
                    return Bytes32(candidate)
