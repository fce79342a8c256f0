"""Job and workflow record stores.

Every read returns an independent copy of the stored record, and every update
runs its mutator against a private copy that replaces the stored value only if
the mutator returns cleanly. Updates to the same id are serialized with a
per-id lock; different ids never wait on each other.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from loguru import logger

from adscope.config import settings
from adscope.errors import RecordNotFound


class StoredRecord(Protocol):
    id: str
    created_at: str
    completed_at: str | None

    @property
    def is_terminal(self) -> bool: ...

    def to_dict(self) -> dict[str, Any]: ...


R = TypeVar("R", bound=StoredRecord)
Mutator = Callable[[R], None]
Predicate = Callable[[R], bool]


class RecordStore(Protocol[R]):
    async def create(self, record: R) -> str: ...

    async def get(self, record_id: str) -> R: ...

    async def update(self, record_id: str, mutator: Mutator) -> R: ...

    async def list(self, predicate: Predicate | None = None) -> list[R]: ...

    async def delete(self, record_id: str) -> None: ...

    async def evict_expired(self) -> list[str]: ...


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _expired(record: StoredRecord, ttl: timedelta | None, now: datetime) -> bool:
    if ttl is None or not record.is_terminal:
        return False
    finished = _parse_ts(record.completed_at) or _parse_ts(record.created_at)
    return finished is not None and now - finished > ttl


def _over_cap(records: list[StoredRecord], max_records: int) -> list[str]:
    """Oldest terminal records to drop so the store fits under ``max_records``."""
    if max_records <= 0 or len(records) <= max_records:
        return []
    excess = len(records) - max_records
    terminal = sorted(
        (record for record in records if record.is_terminal),
        key=lambda record: record.created_at,
    )
    return [record.id for record in terminal[:excess]]


class _LockedStore(Generic[R]):
    def __init__(self, *, kind: str, ttl_hours: float = 0, max_records: int = 0):
        self.kind = kind
        self.ttl = timedelta(hours=ttl_hours) if ttl_hours and ttl_hours > 0 else None
        self.max_records = max(0, int(max_records))
        self._locks: dict[str, asyncio.Lock] = {}
        self._structure_lock = asyncio.Lock()

    def _lock_for(self, record_id: str) -> asyncio.Lock:
        lock = self._locks.get(record_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[record_id] = lock
        return lock

    # Storage primitives implemented by subclasses.
    def _read(self, record_id: str) -> R | None:
        raise NotImplementedError

    def _write(self, record: R) -> None:
        raise NotImplementedError

    def _remove(self, record_id: str) -> None:
        raise NotImplementedError

    def _all(self) -> list[R]:
        raise NotImplementedError

    async def create(self, record: R) -> str:
        async with self._structure_lock:
            self._write(copy.deepcopy(record))
            for record_id in _over_cap(self._all(), self.max_records):
                if record_id != record.id:
                    self._drop(record_id, "capacity")
        return record.id

    async def get(self, record_id: str) -> R:
        record = self._read(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return copy.deepcopy(record)

    async def update(self, record_id: str, mutator: Mutator) -> R:
        async with self._lock_for(record_id):
            current = self._read(record_id)
            if current is None:
                raise RecordNotFound(record_id)
            working = copy.deepcopy(current)
            mutator(working)
            self._write(working)
            return copy.deepcopy(working)

    async def list(self, predicate: Predicate | None = None) -> list[R]:
        records = sorted(self._all(), key=lambda record: record.created_at)
        return [copy.deepcopy(record) for record in records if predicate is None or predicate(record)]

    async def delete(self, record_id: str) -> None:
        async with self._structure_lock:
            if self._read(record_id) is None:
                raise RecordNotFound(record_id)
            self._drop(record_id, "deleted")

    async def evict_expired(self) -> list[str]:
        async with self._structure_lock:
            now = datetime.now(timezone.utc)
            records = self._all()
            evicted = [record.id for record in records if _expired(record, self.ttl, now)]
            for record_id in evicted:
                self._drop(record_id, "expired")
            remaining = [record for record in records if record.id not in set(evicted)]
            for record_id in _over_cap(remaining, self.max_records):
                self._drop(record_id, "capacity")
                evicted.append(record_id)
        return evicted

    def _drop(self, record_id: str, reason: str) -> None:
        self._remove(record_id)
        self._locks.pop(record_id, None)
        logger.debug(f"Evicted {self.kind} {record_id} ({reason})")


class InMemoryRecordStore(_LockedStore[R]):
    """Process-local store. Records vanish on restart."""

    def __init__(self, *, kind: str = "record", ttl_hours: float = 0, max_records: int = 0):
        super().__init__(kind=kind, ttl_hours=ttl_hours, max_records=max_records)
        self._records: dict[str, R] = {}

    def _read(self, record_id: str) -> R | None:
        return self._records.get(record_id)

    def _write(self, record: R) -> None:
        self._records[record.id] = record

    def _remove(self, record_id: str) -> None:
        self._records.pop(record_id, None)

    def _all(self) -> list[R]:
        return list(self._records.values())


class JsonFileRecordStore(_LockedStore[R]):
    """One JSON document per record, written with an atomic replace."""

    def __init__(
        self,
        directory: str | Path,
        record_type: type,
        *,
        kind: str = "record",
        ttl_hours: float = 0,
        max_records: int = 0,
    ):
        super().__init__(kind=kind, ttl_hours=ttl_hours, max_records=max_records)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.record_type = record_type

    def _path(self, record_id: str) -> Path:
        safe_id = "".join(ch for ch in record_id if ch.isalnum() or ch in "-_")
        return self.directory / f"{safe_id}.json"

    def _load(self, path: Path) -> R | None:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return self.record_type.from_dict(payload)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Skipping unreadable {self.kind} file {path.name}: {exc}")
            return None

    def _read(self, record_id: str) -> R | None:
        return self._load(self._path(record_id))

    def _write(self, record: R) -> None:
        path = self._path(record.id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(record.to_dict(), ensure_ascii=True), encoding="utf-8")
        os.replace(tmp_path, path)

    def _remove(self, record_id: str) -> None:
        self._path(record_id).unlink(missing_ok=True)

    def _all(self) -> list[R]:
        records = []
        for path in sorted(self.directory.glob("*.json")):
            record = self._load(path)
            if record is not None:
                records.append(record)
        return records


def build_store(record_type: type, kind: str) -> RecordStore:
    """Store for one record kind, chosen by ``STORE_BACKEND``."""
    backend = settings.store_backend.lower().strip()
    if backend == "memory":
        return InMemoryRecordStore(
            kind=kind,
            ttl_hours=settings.store_ttl_hours,
            max_records=settings.store_max_records,
        )
    if backend == "json":
        return JsonFileRecordStore(
            Path(settings.store_dir) / kind,
            record_type,
            kind=kind,
            ttl_hours=settings.store_ttl_hours,
            max_records=settings.store_max_records,
        )
    raise ValueError(f"Unsupported STORE_BACKEND: {settings.store_backend}")
