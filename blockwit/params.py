# Well-known digests, see geth/core/types/hashes.go

EMPTY_CODE_HASH = bytes.fromhex("c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470")  # keccak256(b"")
EMPTY_TRIE_ROOT = bytes.fromhex("56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421")  # keccak256(rlp(b""))

NIBBLES_PER_KEY = 64  # Trie keys are always keccak256 digests.

GWEI = 10**9  # Withdrawal amounts are reported in Gwei, the generator wants Wei.

DEFAULT_MAX_ATTEMPTS = 64  # Upper bound on witness generation attempts per block.
DEFAULT_RPC_TIMEOUT = 60  # Seconds per JSON-RPC request.
DEFAULT_GRIND_BATCH = 1 << 16  # Samples a grinding worker tries before reporting back.
