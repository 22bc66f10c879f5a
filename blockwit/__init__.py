from Crypto.Hash import keccak
import rlp


def keccak_256(x: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=bytes(x)).digest()


def rlp_decode_list(data: bytes) -> list:
    return rlp.decode(data, sedes=rlp.sedes.CountableList(rlp.sedes.Binary(allow_empty=True)))


def rlp_encode_list(items: list) -> bytes:
    return rlp.encode(items)


def encode_hex(v: bytes) -> str:
    return '0x' + bytes(v).hex()


def decode_hex(v: str) -> bytes:
    if v.startswith('0x') or v.startswith('0X'):
        v = v[2:]
    if len(v) % 2 == 1:
        v = '0' + v
    return bytes.fromhex(v)
