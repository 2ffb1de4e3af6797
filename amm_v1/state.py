"""
World state: native balances, nonces, contract code kinds and contract
storage, all kept in one Merkle Patricia trie.
"""
import logging

import rlp
from rlp.sedes import big_endian_int

from amm_v1.errors import InsufficientBalance, InvalidAmount
from amm_v1.trie import Trie

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = b"ACCOUNT:"
STORAGE_PREFIX = b"STORAGE:"
CODE_PREFIX = b"CODE:"


class Account(rlp.Serializable):
    """Native-asset account record."""
    fields = [
        ('nonce', big_endian_int),
        ('balance', big_endian_int),
    ]


EMPTY_ACCOUNT = Account(nonce=0, balance=0)


class WorldState:
    def __init__(self, db, root_hash: bytes = None):
        self.trie = Trie(db, root_hash=root_hash)

    @property
    def root_hash(self) -> bytes:
        return self.trie.root_hash

    def snapshot(self) -> bytes:
        return self.trie.snapshot()

    def revert(self, snapshot: bytes):
        self.trie.revert(snapshot)

    # ==========================================================================
    # ACCOUNTS
    # ==========================================================================

    def get_account(self, address: bytes) -> Account:
        raw = self.trie.get(ACCOUNT_PREFIX + address)
        if not raw:
            return EMPTY_ACCOUNT
        return rlp.decode(raw, sedes=Account)

    def set_account(self, address: bytes, account: Account):
        self.trie.set(ACCOUNT_PREFIX + address, rlp.encode(account))

    def get_balance(self, address: bytes) -> int:
        return self.get_account(address).balance

    def get_nonce(self, address: bytes) -> int:
        return self.get_account(address).nonce

    def increment_nonce(self, address: bytes) -> int:
        account = self.get_account(address)
        self.set_account(address, account.copy(nonce=account.nonce + 1))
        return account.nonce

    def credit(self, address: bytes, amount: int):
        if amount < 0:
            raise InvalidAmount(f"Cannot credit negative amount {amount}")
        account = self.get_account(address)
        self.set_account(address, account.copy(balance=account.balance + amount))

    def debit(self, address: bytes, amount: int):
        if amount < 0:
            raise InvalidAmount(f"Cannot debit negative amount {amount}")
        account = self.get_account(address)
        if account.balance < amount:
            raise InsufficientBalance(
                f"Account {address.hex()[:8]} holds {account.balance}, needs {amount}"
            )
        self.set_account(address, account.copy(balance=account.balance - amount))

    def transfer(self, sender: bytes, recipient: bytes, amount: int):
        """Move base asset between accounts."""
        if amount == 0:
            return
        self.debit(sender, amount)
        self.credit(recipient, amount)

    # ==========================================================================
    # CONTRACTS
    # ==========================================================================

    def get_code(self, address: bytes) -> str | None:
        raw = self.trie.get(CODE_PREFIX + address)
        return raw.decode('utf-8') if raw else None

    def set_code(self, address: bytes, kind: str):
        self.trie.set(CODE_PREFIX + address, kind.encode('utf-8'))

    def get_storage(self, address: bytes, key: bytes) -> bytes | None:
        return self.trie.get(STORAGE_PREFIX + address + b":" + key)

    def set_storage(self, address: bytes, key: bytes, value: bytes):
        self.trie.set(STORAGE_PREFIX + address + b":" + key, value)
