from collections import OrderedDict
from typing import Dict, Iterable, Optional
from .types import Address, Bytes32


class AccountState(object):
    """What a pre-state trace reports for one account: its code, and the storage slots that were touched"""
    address: Address
    code: Optional[bytes]
    # slot key -> value, both 32 bytes. None if no storage was reported at all.
    storage: Optional[Dict[Bytes32, Bytes32]]

    def __init__(self, address: Address, code: Optional[bytes] = None,
                 storage: Optional[Dict[Bytes32, Bytes32]] = None):
        self.address = address
        self.code = code
        self.storage = storage

    def __repr__(self) -> str:
        return "AccountState(address=0x%s, code=%s, storage=%s)" % (
            self.address.hex(),
            None if self.code is None else "%d bytes" % len(self.code),
            None if self.storage is None else "%d slots" % len(self.storage))


def merge_account_state(old: AccountState, new: AccountState) -> AccountState:
    # Code does not change within a block (barring self-destruct + redeploy), keep the first one seen.
    code = old.code if old.code is not None else new.code
    storage = dict(old.storage or {})
    storage.update(new.storage or {})
    return AccountState(old.address, code=code, storage=storage if len(storage) > 0 else None)


def collect_touched_state(fragments_per_tx: Iterable[Dict[Address, AccountState]]) -> "OrderedDict[Address, AccountState]":
    """Merge the pre-state traces of all transactions of a block into one read-set, ordered by address"""
    accounts: Dict[Address, AccountState] = dict()
    for fragments in fragments_per_tx:
        for address, account in fragments.items():
            prev = accounts.get(address, AccountState(address))
            accounts[address] = merge_account_state(prev, account)
    return OrderedDict((addr, accounts[addr]) for addr in sorted(accounts.keys(), key=bytes))
