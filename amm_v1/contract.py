"""
Base class for contracts run by the chain.

A contract object holds no mutable state of its own: everything lives in
the world state trie under the contract's address, so the chain can roll a
failed call back by restoring the trie root.
"""
import rlp
from rlp.sedes import big_endian_int, binary

from amm_v1.core import LogEntry


class Message:
    """Caller context of the current frame."""

    def __init__(self, sender: bytes, value: int = 0):
        self.sender = sender
        self.value = value

    def __repr__(self) -> str:
        return f"Message(sender={self.sender.hex()[:8]}, value={self.value})"


def external(func=None, *, payable: bool = False):
    """
    Mark a method as callable by transactions and other contracts.

    Only `payable` methods may receive base asset with the call.
    """
    def decorate(f):
        f._external = True
        f._payable = payable
        return f

    if func is not None:
        return decorate(func)
    return decorate


class ContractRef:
    """
    Handle to another contract. Attribute access yields callables that go
    through the chain as nested message calls with this contract as sender.
    """

    def __init__(self, chain, caller: bytes, address: bytes):
        self._chain = chain
        self._caller = caller
        self.address = address

    def __getattr__(self, method: str):
        if method.startswith('_'):
            raise AttributeError(method)

        def call(*args, value: int = 0):
            return self._chain.message_call(self._caller, self.address, method, list(args), value)

        call.__name__ = method
        return call


class Contract:
    def __init__(self, chain, address: bytes):
        self.chain = chain
        self.address = address

    @classmethod
    def kind(cls) -> str:
        return cls.__name__

    @classmethod
    def external_method(cls, name: str):
        """The external function called `name`, or None."""
        if name.startswith('_'):
            return None
        func = getattr(cls, name, None)
        if func is None or not getattr(func, '_external', False):
            return None
        return func

    # --- environment ---

    @property
    def msg(self) -> Message:
        return self.chain.current_message

    @property
    def block_timestamp(self) -> int:
        return self.chain.timestamp

    @property
    def balance(self) -> int:
        return self.chain.state.get_balance(self.address)

    # --- storage ---

    def _get_int(self, key: bytes, default: int = 0) -> int:
        raw = self.chain.state.get_storage(self.address, key)
        if raw is None:
            return default
        return rlp.decode(raw, sedes=big_endian_int)

    def _set_int(self, key: bytes, value: int):
        self.chain.state.set_storage(self.address, key, rlp.encode(value, sedes=big_endian_int))

    def _get_bytes(self, key: bytes) -> bytes | None:
        raw = self.chain.state.get_storage(self.address, key)
        if raw is None:
            return None
        return rlp.decode(raw, sedes=binary)

    def _set_bytes(self, key: bytes, value: bytes):
        self.chain.state.set_storage(self.address, key, rlp.encode(value, sedes=binary))

    def _get_str(self, key: bytes) -> str:
        raw = self._get_bytes(key)
        return raw.decode('utf-8') if raw is not None else ""

    def _set_str(self, key: bytes, value: str):
        self._set_bytes(key, value.encode('utf-8'))

    # --- effects ---

    def _emit(self, event: str, **args):
        self.chain.emit(LogEntry(self.address, event, args))

    def _send(self, to: bytes, amount: int):
        """Plain base-asset payment; does not run code at `to`."""
        self.chain.state.transfer(self.address, to, amount)

    def _ref(self, address: bytes) -> ContractRef:
        return ContractRef(self.chain, self.address, address)

    def __repr__(self) -> str:
        return f"{self.kind()}({self.address.hex()})"
