"""
ERC20-style fungible ledgers.

`Token` is the paired asset an exchange trades against the base asset.
`LiquidityToken` adds the mint/burn capability the exchange uses to issue
and retire ownership units.
"""
import logging

from amm_v1.contract import Contract, external
from amm_v1.crypto import ZERO_ADDRESS, is_valid_address
from amm_v1.errors import AlreadyInitialized, InsufficientOwnership, InvalidAmount

logger = logging.getLogger(__name__)

DECIMALS = 18


def _balance_key(owner: bytes) -> bytes:
    return b"balance:" + owner


def _allowance_key(owner: bytes, spender: bytes) -> bytes:
    return b"allowance:" + owner + spender


class Token(Contract):
    @external
    def setup(self, name: str, symbol: str, initial_supply: int):
        """Name the token and credit the whole initial supply to the deployer."""
        self._init_metadata(name, symbol)
        if initial_supply < 0:
            raise InvalidAmount("Initial supply cannot be negative")
        self._mint(self.msg.sender, initial_supply)
        logger.info(f"Token {symbol} created with supply {initial_supply}")

    def _init_metadata(self, name: str, symbol: str):
        if self._get_int(b"initialized"):
            raise AlreadyInitialized(f"{self} is already set up")
        self._set_int(b"initialized", 1)
        self._set_str(b"name", name)
        self._set_str(b"symbol", symbol)
        self._set_int(b"decimals", DECIMALS)

    # --- views ---

    @external
    def name(self) -> str:
        return self._get_str(b"name")

    @external
    def symbol(self) -> str:
        return self._get_str(b"symbol")

    @external
    def decimals(self) -> int:
        return self._get_int(b"decimals")

    @external
    def total_supply(self) -> int:
        return self._get_int(b"total_supply")

    @external
    def balance_of(self, owner: bytes) -> int:
        return self._get_int(_balance_key(owner))

    @external
    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self._get_int(_allowance_key(owner, spender))

    # --- transfers ---

    @external
    def transfer(self, to: bytes, amount: int) -> bool:
        return self._transfer(self.msg.sender, to, amount)

    @external
    def transfer_from(self, owner: bytes, to: bytes, amount: int) -> bool:
        """Move `amount` from `owner` to `to`, spending the caller's allowance."""
        spender = self.msg.sender
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            return False
        if not self._transfer(owner, to, amount):
            return False
        self._set_int(_allowance_key(owner, spender), allowed - amount)
        return True

    @external
    def approve(self, spender: bytes, amount: int) -> bool:
        if amount < 0:
            raise InvalidAmount("Allowance cannot be negative")
        owner = self.msg.sender
        self._set_int(_allowance_key(owner, spender), amount)
        self._emit("Approval", owner=owner, spender=spender, value=amount)
        return True

    def _transfer(self, sender: bytes, to: bytes, amount: int) -> bool:
        # Reported, not raised: callers decide how to fail.
        if amount < 0:
            raise InvalidAmount("Transfer amount cannot be negative")
        if not is_valid_address(to):
            return False
        sender_balance = self.balance_of(sender)
        if sender_balance < amount:
            return False
        self._set_int(_balance_key(sender), sender_balance - amount)
        self._set_int(_balance_key(to), self.balance_of(to) + amount)
        self._emit("Transfer", sender=sender, receiver=to, value=amount)
        return True

    def _mint(self, holder: bytes, amount: int):
        self._set_int(_balance_key(holder), self.balance_of(holder) + amount)
        self._set_int(b"total_supply", self.total_supply() + amount)
        self._emit("Transfer", sender=ZERO_ADDRESS, receiver=holder, value=amount)


class LiquidityToken(Token):
    """Ownership-unit ledger: balances plus mint, burn and total issued."""

    def total_issued(self) -> int:
        return self.total_supply()

    def _burn(self, holder: bytes, amount: int):
        held = self.balance_of(holder)
        if held < amount:
            raise InsufficientOwnership(
                f"{holder.hex()[:8]} holds {held} units, tried to burn {amount}"
            )
        self._set_int(_balance_key(holder), held - amount)
        self._set_int(b"total_supply", self.total_supply() - amount)
        self._emit("Transfer", sender=holder, receiver=ZERO_ADDRESS, value=amount)
