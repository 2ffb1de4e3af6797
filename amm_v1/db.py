"""
LevelDB wrapper backing the state trie, blocks and receipts.
"""
import logging
from contextlib import contextmanager
from typing import Optional

import plyvel

logger = logging.getLogger(__name__)


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 64 * 1024 * 1024,  # 64MB
                 max_open_files: int = 1000):
        """
        Open (or create) the store at `db_path`.

        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of write buffer
            max_open_files: Maximum number of open files
        """
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
            )
            self._closed = False
            logger.info(f"Database opened at {db_path}")
        except plyvel.Error as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        """
        Get value by key.

        Returns None if key doesn't exist.
        """
        self._check_open()
        try:
            return self._db.get(key)
        except plyvel.Error as e:
            logger.error(f"Error getting key {key.hex()[:16]}: {e}")
            raise

    def put(self, key: bytes, value: bytes):
        """Put a key-value pair."""
        self._check_open()
        try:
            self._db.put(key, value)
        except plyvel.Error as e:
            logger.error(f"Error putting key {key.hex()[:16]}: {e}")
            raise

    @contextmanager
    def write_batch(self):
        """
        Context manager for batch writes.

        Example:
            with db.write_batch() as batch:
                batch.put(b'key1', b'value1')
                batch.put(b'key2', b'value2')
        """
        self._check_open()
        try:
            # transaction=True drops the batch if the body raises
            with self._db.write_batch(transaction=True) as batch:
                yield batch
        except plyvel.Error as e:
            logger.error(f"Error in batch write: {e}")
            raise

    def get_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        """All key-value pairs whose key starts with `prefix`."""
        self._check_open()
        try:
            return list(self._db.iterator(prefix=prefix))
        except plyvel.Error as e:
            logger.error(f"Error getting prefix {prefix.hex()}: {e}")
            raise

    def close(self):
        """Close the database."""
        if not self._closed:
            self._db.close()
            self._closed = True
            logger.info("Database closed")
