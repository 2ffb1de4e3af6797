"""
Core data structures: signed transactions, receipts and event logs.
"""
import time
from typing import Optional

from .crypto import (
    generate_hash,
    is_valid_address,
    public_key_to_address,
    sign,
    verify_signature,
)
from .utils.encoding import pack

TRANSFER = "TRANSFER"
DEPLOY = "DEPLOY"
CALL = "CALL"

TX_TYPES = (TRANSFER, DEPLOY, CALL)


class Transaction:
    """
    A signed request from an external account.

    TRANSFER moves `value` base asset to `data['to']` (a contract address
    runs the contract's payable `receive`). DEPLOY creates `data['contract']`
    and calls its `setup(*data['args'])`. CALL runs
    `data['method'](*data['args'])` on the contract at `data['to']`.
    """

    def __init__(self,
                 sender_public_key: str,
                 tx_type: str,
                 data: dict,
                 nonce: int,
                 value: int = 0,
                 signature: Optional[bytes] = None,
                 timestamp: Optional[float] = None,
                 chain_id: Optional[int] = 1):
        self.sender_public_key = sender_public_key
        self.tx_type = tx_type
        self.data = data
        self.nonce = nonce
        self.value = value
        self.timestamp = timestamp or time.time()
        self.signature = signature
        self.chain_id = chain_id

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a Transaction object from a dictionary."""
        return cls(
            sender_public_key=data["sender_public_key"],
            tx_type=data["tx_type"],
            data=data["data"],
            nonce=data["nonce"],
            value=data.get("value", 0),
            signature=data.get("signature"),
            timestamp=data.get("timestamp"),
            chain_id=data.get("chain_id"),
        )

    def to_dict(self, include_signature=True):
        data = {
            "sender_public_key": self.sender_public_key,
            "tx_type": self.tx_type,
            "data": self.data,
            "nonce": self.nonce,
            "value": self.value,
            "timestamp": self.timestamp,
            "chain_id": self.chain_id,
        }
        if include_signature and self.signature:
            data["signature"] = self.signature
        return data

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation for signing."""
        return pack(self.to_dict(include_signature=False))

    def sign(self, private_key):
        """Signs the transaction."""
        self.signature = sign(private_key, self.get_signing_data())

    def verify_signature(self) -> bool:
        """Verifies the transaction's signature."""
        if not self.signature:
            return False
        return verify_signature(
            self.sender_public_key,
            self.signature,
            self.get_signing_data()
        )

    @property
    def id(self) -> bytes:
        """The unique hash identifier of the transaction."""
        return generate_hash(self.get_signing_data())

    @property
    def sender(self) -> bytes:
        return public_key_to_address(self.sender_public_key)

    @property
    def to(self) -> Optional[bytes]:
        return self.data.get("to")

    def validate_basic(self) -> tuple[bool, str]:
        """
        Performs basic validation checks on the transaction.
        Returns (is_valid, error_message)
        """
        if not self.verify_signature():
            return False, "Invalid signature"

        if self.tx_type not in TX_TYPES:
            return False, f"Unknown transaction type: {self.tx_type}"

        if not isinstance(self.value, int) or self.value < 0:
            return False, "Value must be a non-negative integer"

        if self.tx_type == TRANSFER:
            if not is_valid_address(self.data.get('to')):
                return False, "TRANSFER requires a valid 'to'"
            if self.value <= 0:
                return False, "Transfer value must be positive"

        elif self.tx_type == DEPLOY:
            if not isinstance(self.data.get('contract'), str):
                return False, "DEPLOY requires 'contract'"
            if not isinstance(self.data.get('args', []), list):
                return False, "DEPLOY 'args' must be a list"

        elif self.tx_type == CALL:
            if not is_valid_address(self.data.get('to')):
                return False, "CALL requires a valid 'to'"
            method = self.data.get('method')
            if not isinstance(method, str) or not method or method.startswith('_'):
                return False, "CALL requires a public 'method'"
            if not isinstance(self.data.get('args', []), list):
                return False, "CALL 'args' must be a list"

        return True, ""


class LogEntry:
    """An event emitted by a contract during a call."""

    def __init__(self, address: bytes, event: str, args: dict):
        self.address = address
        self.event = event
        self.args = args

    def to_dict(self) -> dict:
        return {"address": self.address, "event": self.event, "args": dict(self.args)}

    @classmethod
    def from_dict(cls, data: dict) -> 'LogEntry':
        return cls(data["address"], data["event"], data["args"])

    def __eq__(self, other):
        if not isinstance(other, LogEntry):
            return NotImplemented
        return (self.address, self.event, self.args) == (other.address, other.event, other.args)

    def __repr__(self) -> str:
        return f"LogEntry({self.event}, {self.address.hex()[:8]}, {self.args})"


class Receipt:
    """Outcome of one transaction."""

    def __init__(self, tx_id: bytes, status: int, block_height: int, sender: bytes,
                 to: Optional[bytes] = None, return_value=None, logs: list = None,
                 error: str = "", contract_address: Optional[bytes] = None):
        self.tx_id = tx_id
        self.status = status
        self.block_height = block_height
        self.sender = sender
        self.to = to
        self.return_value = return_value
        self.logs = logs or []
        self.error = error
        self.contract_address = contract_address

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    def events(self, name: str) -> list[LogEntry]:
        return [log for log in self.logs if log.event == name]

    def to_dict(self) -> dict:
        return {
            "tx_id": self.tx_id,
            "status": self.status,
            "block_height": self.block_height,
            "sender": self.sender,
            "to": self.to,
            "return_value": self.return_value,
            "logs": [log.to_dict() for log in self.logs],
            "error": self.error,
            "contract_address": self.contract_address,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Receipt':
        return cls(
            tx_id=data["tx_id"],
            status=data["status"],
            block_height=data["block_height"],
            sender=data["sender"],
            to=data.get("to"),
            return_value=data.get("return_value"),
            logs=[LogEntry.from_dict(log) for log in data.get("logs", [])],
            error=data.get("error", ""),
            contract_address=data.get("contract_address"),
        )
