from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Sequence
import requests
from . import decode_hex, encode_hex
from .errors import FetchError
from .params import DEFAULT_RPC_TIMEOUT, EMPTY_CODE_HASH
from .touched import AccountState
from .types import Address, Bytes32, Withdrawal, bytes32_from_hex


class StorageProof(NamedTuple):
    key: Bytes32  # the slot, not hashed yet
    value: int
    proof: List[bytes]


class AccountProof(NamedTuple):
    address: Address
    balance: int
    nonce: int
    code_hash: Bytes32
    storage_hash: Bytes32
    account_proof: List[bytes]
    storage_proof: List[StorageProof]

    def is_empty(self) -> bool:
        # EIP-161 empty account, it has no leaf in the state trie
        return self.balance == 0 and self.nonce == 0 and self.code_hash == EMPTY_CODE_HASH


class BlockInfo(NamedTuple):
    number: int
    beneficiary: Address
    timestamp: int
    difficulty: int
    random: Bytes32
    gas_limit: int
    base_fee: int
    state_root: Bytes32
    transactions: List[Bytes32]  # hashes
    withdrawals: Optional[List[Withdrawal]]  # None before Shanghai


class TransactionInfo(NamedTuple):
    hash: Bytes32
    raw: bytes  # signed transaction, EIP-2718 envelope
    block_number: Optional[int]
    chain_id: Optional[int]  # not set for legacy transactions


class ExternalSource(Protocol):
    def get_proof(self, address: Address, storage_keys: Sequence[Bytes32], block_number: int) -> AccountProof:
        raise NotImplementedError

    def get_block(self, block_number: int) -> BlockInfo:
        raise NotImplementedError

    def get_transaction(self, tx_hash: Bytes32) -> TransactionInfo:
        raise NotImplementedError

    def trace_prestate(self, tx_hash: Bytes32) -> Dict[Address, AccountState]:
        raise NotImplementedError

    def chain_id(self) -> int:
        raise NotImplementedError


def quantity(v: Any) -> int:
    if v is None:
        return 0
    if isinstance(v, int):
        return v
    return int(v, 16)


def parse_account_proof(obj: dict) -> AccountProof:
    return AccountProof(
        address=Address.from_hex(obj['address']),
        balance=quantity(obj['balance']),
        nonce=quantity(obj['nonce']),
        code_hash=bytes32_from_hex(obj['codeHash']),
        storage_hash=bytes32_from_hex(obj['storageHash']),
        account_proof=[decode_hex(p) for p in obj['accountProof']],
        storage_proof=[StorageProof(
            key=bytes32_from_hex(sp['key']),
            value=quantity(sp['value']),
            proof=[decode_hex(p) for p in sp['proof']],
        ) for sp in obj.get('storageProof') or []],
    )


def parse_block(obj: dict) -> BlockInfo:
    withdrawals = None
    if obj.get('withdrawals') is not None:
        withdrawals = [Withdrawal(Address.from_hex(w['address']), quantity(w['amount'])) for w in obj['withdrawals']]
    return BlockInfo(
        number=quantity(obj['number']),
        beneficiary=Address.from_hex(obj['miner']),
        timestamp=quantity(obj['timestamp']),
        difficulty=quantity(obj.get('difficulty')),
        random=bytes32_from_hex(obj.get('mixHash') or '0x'),
        gas_limit=quantity(obj['gasLimit']),
        base_fee=quantity(obj.get('baseFeePerGas')),
        state_root=bytes32_from_hex(obj['stateRoot']),
        # full transaction objects if the block was requested with details
        transactions=[bytes32_from_hex(tx if isinstance(tx, str) else tx['hash']) for tx in obj['transactions']],
        withdrawals=withdrawals,
    )


def parse_prestate(obj: dict) -> Dict[Address, AccountState]:
    out = dict()
    for addr_hex, acc in obj.items():
        address = Address.from_hex(addr_hex)
        code = None
        if acc.get('code') is not None:
            code = decode_hex(acc['code'])
        storage = None
        if acc.get('storage') is not None:
            storage = {bytes32_from_hex(k): bytes32_from_hex(v) for k, v in acc['storage'].items()}
        out[address] = AccountState(address, code=code, storage=storage)
    return out


class HttpSource(ExternalSource):
    """JSON-RPC client for an execution node with the debug namespace enabled"""
    api_addr: str
    timeout: float

    def __init__(self, api_addr: str, timeout: float = DEFAULT_RPC_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.api_addr = api_addr
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self._next_id = 1

    def call(self, method: str, *params) -> Any:
        payload = {'jsonrpc': '2.0', 'method': method, 'params': list(params), 'id': self._next_id}
        self._next_id += 1
        try:
            response = self.session.post(self.api_addr, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise FetchError("%s request failed: %s" % (method, e)) from e
        except ValueError as e:
            raise FetchError("%s returned invalid JSON" % method) from e
        if body.get('error') is not None:
            raise FetchError("%s failed: %s" % (method, body['error']))
        if 'result' not in body:
            raise FetchError("%s returned no result" % method)
        return body['result']

    def get_proof(self, address: Address, storage_keys: Sequence[Bytes32], block_number: int) -> AccountProof:
        result = self.call('eth_getProof', encode_hex(address), [encode_hex(k) for k in storage_keys],
                           hex(block_number))
        if result is None:
            raise FetchError("no proof for 0x%s at block %d" % (address.hex(), block_number))
        return parse_account_proof(result)

    def get_block(self, block_number: int) -> BlockInfo:
        result = self.call('eth_getBlockByNumber', hex(block_number), False)
        if result is None:
            raise FetchError("block %d not found" % block_number)
        return parse_block(result)

    def get_transaction(self, tx_hash: Bytes32) -> TransactionInfo:
        tx = self.call('eth_getTransactionByHash', encode_hex(tx_hash))
        if tx is None:
            raise FetchError("transaction %s not found" % encode_hex(tx_hash))
        raw = self.call('eth_getRawTransactionByHash', encode_hex(tx_hash))
        if raw is None:
            raise FetchError("raw transaction %s not found" % encode_hex(tx_hash))
        return TransactionInfo(
            hash=tx_hash,
            raw=decode_hex(raw),
            block_number=None if tx.get('blockNumber') is None else quantity(tx['blockNumber']),
            chain_id=None if tx.get('chainId') is None else quantity(tx['chainId']),
        )

    def trace_prestate(self, tx_hash: Bytes32) -> Dict[Address, AccountState]:
        result = self.call('debug_traceTransaction', encode_hex(tx_hash), {'tracer': 'prestateTracer'})
        if result is None:
            raise FetchError("no trace for transaction %s" % encode_hex(tx_hash))
        return parse_prestate(result)

    def chain_id(self) -> int:
        return quantity(self.call('eth_chainId'))
