"""
A Merkle Patricia Trie over rlp-encoded nodes.

Nodes are content-addressed and never overwritten, so any previous root hash
stays readable. The chain relies on this for rollback: reverting a call is
just restoring the root hash captured before it.
"""
import rlp

from amm_v1.crypto import generate_hash

BLANK_NODE = b''
BLANK_ROOT = generate_hash(rlp.encode(BLANK_NODE))


def bytes_to_nibbles(b: bytes) -> tuple[int, ...]:
    """Convert a byte string into a nibble tuple."""
    nibbles = []
    for byte in b:
        nibbles.append(byte >> 4)
        nibbles.append(byte & 15)
    return tuple(nibbles)


def nibbles_to_bytes(nibbles: tuple[int, ...]) -> bytes:
    """Convert an even-length nibble tuple into a byte string."""
    if len(nibbles) % 2:
        raise ValueError("Nibbles must be of even length")
    return bytes((nibbles[i] << 4) + nibbles[i + 1] for i in range(0, len(nibbles), 2))


def hex_prefix_encode(nibbles: tuple[int, ...], is_leaf: bool) -> bytes:
    """
    Hex-prefix encode a nibble path.
    The flag nibble records leaf/extension and odd/even length.
    """
    flag = (2 if is_leaf else 0) + (len(nibbles) % 2)
    if flag % 2:
        return nibbles_to_bytes((flag,) + tuple(nibbles))
    return nibbles_to_bytes((flag, 0) + tuple(nibbles))


def hex_prefix_decode(encoded: bytes) -> tuple[tuple[int, ...], bool]:
    """Decode a hex-prefix encoded path into (nibbles, is_leaf)."""
    nibbles = bytes_to_nibbles(encoded)
    flag = nibbles[0]
    is_leaf = flag >= 2
    if flag % 2:
        return nibbles[1:], is_leaf
    return nibbles[2:], is_leaf


def _common_prefix_length(a: tuple, b: tuple) -> int:
    length = 0
    for x, y in zip(a, b):
        if x != y:
            break
        length += 1
    return length


class Trie:
    def __init__(self, db, root_hash: bytes = None):
        self.db = db
        self.root_hash = root_hash or BLANK_ROOT

    # --- snapshots ---

    def snapshot(self) -> bytes:
        """Handle that restores the current contents through revert()."""
        return self.root_hash

    def revert(self, root_hash: bytes):
        self.root_hash = root_hash

    # --- reads ---

    def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        node_hash = self.root_hash
        path = bytes_to_nibbles(key)

        while True:
            node = self._load(node_hash)
            if node is None:
                return None

            if len(node) == 17:
                if not path:
                    return node[16] or None
                node_hash, path = node[path[0]], path[1:]
                continue

            encoded_path, child = node
            node_path, is_leaf = hex_prefix_decode(encoded_path)
            if is_leaf:
                return child if node_path == path else None
            if path[:len(node_path)] != node_path:
                return None
            node_hash, path = child, path[len(node_path):]

    # --- writes ---

    def set(self, key: bytes, value: bytes):
        """Set a key-value pair. Empty values are reserved for blank slots."""
        if not value:
            raise ValueError("Trie values must be non-empty")
        self.root_hash = self._insert(self.root_hash, bytes_to_nibbles(key), value)

    def _insert(self, node_hash: bytes, path: tuple[int, ...], value: bytes) -> bytes:
        node = self._load(node_hash)
        if node is None:
            return self._leaf(path, value)

        if len(node) == 17:
            if not path:
                node[16] = value
            else:
                node[path[0]] = self._insert(node[path[0]], path[1:], value)
            return self._store(node)

        encoded_path, child = node
        node_path, is_leaf = hex_prefix_decode(encoded_path)
        shared = _common_prefix_length(path, node_path)

        if is_leaf and shared == len(node_path) == len(path):
            return self._store([encoded_path, value])
        if not is_leaf and shared == len(node_path):
            return self._store([encoded_path, self._insert(child, path[shared:], value)])

        # Paths diverge inside this node: split it around a new branch.
        branch = [BLANK_NODE] * 17
        old_rest = node_path[shared:]
        if is_leaf:
            if old_rest:
                branch[old_rest[0]] = self._leaf(old_rest[1:], child)
            else:
                branch[16] = child
        elif len(old_rest) == 1:
            branch[old_rest[0]] = child
        else:
            branch[old_rest[0]] = self._store([hex_prefix_encode(old_rest[1:], is_leaf=False), child])

        new_rest = path[shared:]
        if new_rest:
            branch[new_rest[0]] = self._leaf(new_rest[1:], value)
        else:
            branch[16] = value

        branch_hash = self._store(branch)
        if shared:
            return self._store([hex_prefix_encode(path[:shared], is_leaf=False), branch_hash])
        return branch_hash

    # --- node storage ---

    def _leaf(self, path: tuple[int, ...], value: bytes) -> bytes:
        return self._store([hex_prefix_encode(path, is_leaf=True), value])

    def _load(self, node_hash: bytes) -> list | None:
        if not node_hash or node_hash == BLANK_ROOT:
            return None
        encoded = self.db.get(node_hash)
        if not encoded:
            return None
        return list(rlp.decode(encoded))

    def _store(self, node: list) -> bytes:
        encoded = rlp.encode(node)
        node_hash = generate_hash(encoded)
        self.db.put(node_hash, encoded)
        return node_hash
