"""
Keyed record store with exclusive create and all-or-nothing transactions.

A transaction stages creates and read-modify-write updates. Nothing touches
the stored records until ``commit``, which runs under the store lock:
every staged create must be absent, every update is applied to the value
currently stored (so two votes on the same proposal never lose an
increment), and then all writes land together. If any check or update
raises, no write happens.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type

from .models import RECORD_TYPES

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for keyed store operations"""
    pass


class KeyExistsError(StoreError):
    """Create attempted on an address that is already taken"""

    def __init__(self, key: str):
        super().__init__(f"Key already exists: {key}")
        self.key = key


class KeyNotFoundError(StoreError):
    """Update attempted on an address that holds no record"""

    def __init__(self, key: str):
        super().__init__(f"Key not found: {key}")
        self.key = key


class Transaction:
    """Staged writes against a keyed store"""

    def __init__(self, store: 'InMemoryKeyedStore'):
        self._store = store
        self._creates: Dict[str, Any] = {}
        self._updates: List[Tuple[str, Callable[[Any], None]]] = []
        self.committed = False

    def create(self, key: str, record: Any):
        if key in self._creates:
            raise KeyExistsError(key)
        self._creates[key] = copy.deepcopy(record)

    def update(self, key: str, mutate: Callable[[Any], None]):
        """Stage ``mutate`` to run against the stored record at commit"""
        self._updates.append((key, mutate))

    def commit(self):
        if self.committed:
            raise StoreError("Transaction already committed")
        self._store._apply(self)
        self.committed = True


class InMemoryKeyedStore:
    """Process-local keyed store"""

    def __init__(self):
        self._records: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            record = self._records.get(key)
            return copy.deepcopy(record) if record is not None else None

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def create(self, key: str, record: Any):
        with self.transaction() as txn:
            txn.create(key, record)

    def records_of_type(self, record_type: Type) -> List[Any]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()
                    if isinstance(r, record_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Commit staged writes on clean exit, discard them on exception"""
        txn = Transaction(self)
        yield txn
        txn.commit()

    def _apply(self, txn: Transaction):
        with self._lock:
            for key in txn._creates:
                if key in self._records:
                    raise KeyExistsError(key)

            staged: Dict[str, Any] = {}
            for key, mutate in txn._updates:
                if key in staged:
                    record = staged[key]
                elif key in self._records:
                    record = copy.deepcopy(self._records[key])
                else:
                    raise KeyNotFoundError(key)
                mutate(record)
                staged[key] = record

            records = dict(self._records)
            records.update(txn._creates)
            records.update(staged)
            self._persist(records)
            self._records = records

    def _persist(self, records: Dict[str, Any]):
        pass


class FileKeyedStore(InMemoryKeyedStore):
    """Keyed store mirrored to a JSON file after every commit"""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self):
        with open(self.path, 'r') as f:
            raw = json.load(f)

        for key, entry in raw.items():
            record_type = RECORD_TYPES.get(entry['type'])
            if record_type is None:
                raise StoreError(
                    f"Unknown record type {entry['type']!r} at {key}")
            self._records[key] = record_type.from_dict(entry['data'])

        logger.info(f"Loaded {len(self._records)} records from {self.path}")

    def _persist(self, records: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            key: {'type': type(record).__name__, 'data': record.to_dict()}
            for key, record in records.items()
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(payload, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
