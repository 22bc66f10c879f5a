from typing import NamedTuple
from remerkleable.complex import Container
from remerkleable.byte_arrays import Bytes32, ByteVector
from remerkleable.basic import uint64, uint256
from . import decode_hex


class Address(ByteVector[20]):
    @staticmethod
    def from_hex(v: str) -> "Address":
        # JSON-RPC quantities may drop leading zero bytes, addresses never do, but be lenient
        data = decode_hex(v)
        if len(data) > 20:
            raise ValueError("address too long: %s" % v)
        return Address(data.rjust(20, b"\x00"))


def bytes32_from_hex(v: str) -> Bytes32:
    # storage keys like "0x0" are valid in RPC requests and responses
    return Bytes32(decode_hex(v).rjust(32, b'\x00'))


# Block context the generator needs to re-execute the block, besides the state.
class BlockMetadata(Container):
    beneficiary: Address  # 'coinbase'
    timestamp: uint64
    block_number: uint64
    difficulty: uint256  # zero after the Merge
    random: Bytes32  # 'mixHash' / 'prevRandao'
    gas_limit: uint64
    chain_id: uint256
    base_fee: uint256


class Withdrawal(NamedTuple):
    address: Address
    amount: int  # as reported by the node, see params.GWEI
