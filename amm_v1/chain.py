"""
A persistent single-node chain that executes exchange contracts.

Execution model:
- Transactions are applied one at a time; nothing interleaves.
- Every message call snapshots the state trie root. If the call raises, the
  trie is restored to that root and the call's logs are dropped, so a
  nested failure rolls back its caller too once the error propagates.
- The sender's nonce increments even when the transaction fails.
- Deadlines are checked against the current block timestamp.
"""
import logging
import time
from typing import Optional

from amm_v1.config import Config
from amm_v1.contract import Contract, Message
from amm_v1.core import CALL, DEPLOY, TRANSFER, LogEntry, Receipt, Transaction
from amm_v1.crypto import ZERO_ADDRESS, contract_address
from amm_v1.db import DB
from amm_v1.erc20 import Token
from amm_v1.errors import (
    InvalidTransaction,
    NotPayable,
    UnknownContract,
    ValidationError,
)
from amm_v1.exchange import Exchange
from amm_v1.state import WorldState
from amm_v1.utils.encoding import pack, unpack

logger = logging.getLogger(__name__)

HEAD_KEY = b'head'
BLOCK_PREFIX = b'block:'
RECEIPT_PREFIX = b'receipt:'
CONTRACT_PREFIX = b'contract:'

CONTRACT_TYPES: dict[str, type] = {}


def register_contract(cls: type) -> type:
    """Make a Contract subclass deployable (and reloadable) by kind name."""
    if not issubclass(cls, Contract):
        raise TypeError(f"{cls!r} is not a Contract")
    CONTRACT_TYPES[cls.kind()] = cls
    return cls


register_contract(Token)
register_contract(Exchange)


def _height_key(height: int) -> bytes:
    return BLOCK_PREFIX + height.to_bytes(8, 'big')


class Blockchain:
    def __init__(self, db_path: str = None, db: DB = None, config: Config = None,
                 monitor=None):
        self.config = config or Config.default()
        if db:
            self.db = db
        elif db_path:
            self.db = DB(
                db_path,
                write_buffer_size=self.config.database.write_buffer_size,
                max_open_files=self.config.database.max_open_files,
            )
        else:
            raise ValueError("Either db_path or a DB object must be provided.")

        self.chain_id = self.config.chain.chain_id
        self.monitor = monitor
        self._frames: list[Message] = []
        self._logs: list[LogEntry] = []
        self._contracts: dict[bytes, Contract] = {}

        head = self.db.get(HEAD_KEY)
        if head is None:
            self.height = 0
            self.timestamp = self.config.chain.genesis_timestamp or int(time.time())
            self._pending_tx_ids: list[bytes] = []
            self.state = WorldState(self.db)
            self._write_head()
            logger.info(f"New chain {self.chain_id} at timestamp {self.timestamp}")
        else:
            head = unpack(head)
            self.height = head['height']
            self.timestamp = head['timestamp']
            self._pending_tx_ids = list(head['pending'])
            self.state = WorldState(self.db, root_hash=head['state_root'])
            logger.info(f"Reopened chain {self.chain_id} at height {self.height}")

    # ==========================================================================
    # HEAD & BLOCKS
    # ==========================================================================

    @property
    def state_root(self) -> bytes:
        return self.state.root_hash

    @property
    def pending_tx_ids(self) -> list[bytes]:
        """Ids of the transactions applied since the last sealed block."""
        return list(self._pending_tx_ids)

    def _write_head(self):
        self.db.put(HEAD_KEY, pack({
            'height': self.height,
            'timestamp': self.timestamp,
            'state_root': self.state.root_hash,
            'pending': self._pending_tx_ids,
        }))

    def mine_block(self, timestamp: Optional[int] = None) -> dict:
        """
        Seal the current block and open the next one.

        The next block's timestamp defaults to the current one plus
        ChainConfig.block_time.
        """
        if timestamp is None:
            timestamp = self.timestamp + self.config.chain.block_time
        if timestamp < self.timestamp:
            raise ValueError(f"Timestamp {timestamp} is before current block time {self.timestamp}")

        header = {
            'height': self.height,
            'timestamp': self.timestamp,
            'state_root': self.state.root_hash,
            'transactions': self._pending_tx_ids,
        }
        self.db.put(_height_key(self.height), pack(header))

        self.height += 1
        self.timestamp = timestamp
        self._pending_tx_ids = []
        self._write_head()

        logger.info(f"Sealed block {header['height']} with {len(header['transactions'])} txs")
        if self.monitor:
            self.monitor.update()
        return header

    def get_block(self, height: int) -> dict | None:
        raw = self.db.get(_height_key(height))
        return unpack(raw) if raw else None

    # ==========================================================================
    # ACCOUNTS & CONTRACTS
    # ==========================================================================

    def fund_account(self, address: bytes, amount: int):
        """Genesis-style allocation of base asset."""
        self.state.credit(address, amount)
        self._write_head()
        logger.info(f"Funded {address.hex()[:8]} with {amount}")

    def get_balance(self, address: bytes) -> int:
        return self.state.get_balance(address)

    def get_nonce(self, address: bytes) -> int:
        return self.state.get_nonce(address)

    def contract_at(self, address: bytes) -> Contract | None:
        """The contract deployed at `address` in the current state, if any."""
        kind = self.state.get_code(address)
        if kind is None:
            return None
        contract = self._contracts.get(address)
        if contract is None or contract.kind() != kind:
            cls = CONTRACT_TYPES.get(kind)
            if cls is None:
                raise UnknownContract(f"Contract kind {kind} is not registered")
            contract = cls(self, address)
            self._contracts[address] = contract
        return contract

    def contracts(self, kind: Optional[str] = None) -> list[bytes]:
        """Addresses of successfully deployed contracts, optionally by kind."""
        addresses = []
        for key, value in self.db.get_prefix(CONTRACT_PREFIX):
            if kind is None or value.decode('utf-8') == kind:
                addresses.append(key[len(CONTRACT_PREFIX):])
        return addresses

    # ==========================================================================
    # EXECUTION
    # ==========================================================================

    @property
    def current_message(self) -> Message | None:
        return self._frames[-1] if self._frames else None

    def emit(self, log: LogEntry):
        self._logs.append(log)

    def message_call(self, sender: bytes, to: bytes, method: str, args: list, value: int = 0):
        """
        Run `method` on the contract at `to` as `sender`, attaching `value`.

        Atomic: on any exception the state and the logs are restored to what
        they were before the call, and the exception propagates.
        """
        contract = self.contract_at(to)
        if contract is None:
            raise UnknownContract(f"No contract at {to.hex()}")
        func = type(contract).external_method(method)
        if func is None:
            raise UnknownContract(f"{contract} has no external method {method}")
        if value and not func._payable:
            raise NotPayable(f"{contract}.{method} does not accept base asset")

        snapshot = self.state.snapshot()
        log_mark = len(self._logs)
        self._frames.append(Message(sender, value))
        try:
            self.state.transfer(sender, to, value)
            return func(contract, *args)
        except Exception:
            self.state.revert(snapshot)
            del self._logs[log_mark:]
            raise
        finally:
            self._frames.pop()

    def call(self, to: bytes, method: str, *args, sender: bytes = ZERO_ADDRESS):
        """Read-only call: runs the method and always discards its effects."""
        snapshot = self.state.snapshot()
        log_mark = len(self._logs)
        try:
            return self.message_call(sender, to, method, list(args))
        finally:
            self.state.revert(snapshot)
            del self._logs[log_mark:]

    def send_transaction(self, tx: Transaction) -> Receipt:
        """
        Verify and apply a signed transaction.

        Raises InvalidTransaction before any state change if the signature,
        chain id or nonce is wrong. Otherwise the nonce is consumed, and an
        execution error rolls back everything else, is recorded in a
        failed receipt, and is re-raised.
        """
        started = time.time()

        is_valid, error = tx.validate_basic()
        if not is_valid:
            raise InvalidTransaction(error)
        if tx.chain_id != self.chain_id:
            raise InvalidTransaction(f"Wrong chain ID. Expected {self.chain_id}, got {tx.chain_id}")

        sender = tx.sender
        expected_nonce = self.state.get_nonce(sender)
        if tx.nonce != expected_nonce:
            raise InvalidTransaction(f"Invalid nonce. Expected {expected_nonce}, got {tx.nonce}")

        # Increment nonce (persists even on failure)
        self.state.increment_nonce(sender)
        snapshot = self.state.snapshot()
        self._logs = []

        try:
            result, created = self._execute(tx, sender)
        except Exception as e:
            self.state.revert(snapshot)
            self._logs = []
            logger.warning(f"Transaction {tx.id.hex()[:8]} failed: {e}")
            receipt = Receipt(tx.id, 0, self.height, sender, to=tx.to,
                              error=f"{type(e).__name__}: {e}")
            self._finish(receipt, started)
            raise

        receipt = Receipt(tx.id, 1, self.height, sender, to=tx.to, return_value=result,
                          logs=self._logs, contract_address=created)
        self._logs = []
        self._finish(receipt, started)
        return receipt

    def _execute(self, tx: Transaction, sender: bytes):
        if tx.tx_type == TRANSFER:
            to = tx.to
            if self.state.get_code(to) is not None:
                return self.message_call(sender, to, 'receive', [], tx.value), None
            self.state.transfer(sender, to, tx.value)
            return None, None

        if tx.tx_type == DEPLOY:
            address = self._create(sender, tx.nonce, tx.data['contract'],
                                   tx.data.get('args', []), tx.value)
            return address, address

        if tx.tx_type == CALL:
            result = self.message_call(sender, tx.to, tx.data['method'],
                                       tx.data.get('args', []), tx.value)
            return result, None

        raise ValidationError(f"Unknown transaction type: {tx.tx_type}")

    def _create(self, deployer: bytes, nonce: int, kind: str, args: list, value: int) -> bytes:
        if kind not in CONTRACT_TYPES:
            raise UnknownContract(f"Contract kind {kind} is not registered")
        address = contract_address(deployer, nonce)
        if self.state.get_code(address) is not None:
            raise InvalidTransaction(f"Address collision at {address.hex()}")
        self.state.set_code(address, kind)
        self.message_call(deployer, address, 'setup', args, value)
        logger.info(f"Deployed {kind} at {address.hex()}")
        return address

    def _finish(self, receipt: Receipt, started: float):
        with self.db.write_batch() as batch:
            batch.put(RECEIPT_PREFIX + receipt.tx_id, pack(receipt.to_dict()))
            if receipt.contract_address:
                kind = self.state.get_code(receipt.contract_address)
                batch.put(CONTRACT_PREFIX + receipt.contract_address, kind.encode('utf-8'))
        self._pending_tx_ids.append(receipt.tx_id)
        self._write_head()

        if self.monitor:
            self.monitor.record_tx('success' if receipt.succeeded else 'failed',
                                   time.time() - started)

    # ==========================================================================
    # RECEIPTS & LOGS
    # ==========================================================================

    def get_receipt(self, tx_id: bytes) -> Receipt | None:
        raw = self.db.get(RECEIPT_PREFIX + tx_id)
        return Receipt.from_dict(unpack(raw)) if raw else None

    def get_logs(self, address: Optional[bytes] = None, event: Optional[str] = None) -> list[LogEntry]:
        """All logs of successful transactions, oldest first."""
        tx_ids = []
        for height in range(self.height):
            block = self.get_block(height)
            if block:
                tx_ids.extend(block['transactions'])
        tx_ids.extend(self._pending_tx_ids)

        logs = []
        for tx_id in tx_ids:
            receipt = self.get_receipt(tx_id)
            if receipt is None or not receipt.succeeded:
                continue
            for log in receipt.logs:
                if address is not None and log.address != address:
                    continue
                if event is not None and log.event != event:
                    continue
                logs.append(log)
        return logs

    def close(self):
        self.db.close()
