class WitnessError(Exception):
    """Base of every error raised while assembling or proving a block witness"""


class FetchError(WitnessError):
    """RPC call failed, or the requested resource does not exist"""


class MalformedProofError(WitnessError):
    """Proof node could not be decoded, or has an unsupported shape"""


class ProofMismatchError(MalformedProofError):
    """Proof does not describe a path towards the key it was fetched for"""


class TrieError(WitnessError):
    """Insert conflicts with the structure already present in the partial trie"""


class ConsistencyError(WitnessError):
    """Locally reconstructed state disagrees with the state claimed by the node"""


class GeneratorError(WitnessError):
    """Witness generator rejected the bundle"""


class MissingSiblingError(GeneratorError):
    # While deleting a branch, the generator needed a sibling that was never put in the witness.
    # Fetching a storage slot that lands in that sibling fixes it.

    def __init__(self, nibble: int, address: bytes, slot: int, depth: int):
        self.nibble = nibble
        self.address = address
        self.slot = slot
        self.depth = depth
        super().__init__("missing sibling during branch deletion: nibble=%d address=0x%s slot=%d depth=%d"
                         % (nibble, bytes(address).hex(), slot, depth))


class RetryLimitExceeded(WitnessError):
    """Witness was still incomplete after the maximum number of attempts"""
