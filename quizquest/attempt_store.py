"""
Attempt store for completed quiz runs.

Holds three collections (attempts, users, settings). Every operation is a
coroutine and is transactional per call: the new contents are persisted
first and only then become visible to later reads.
"""
import asyncio
import copy
import json
import logging
import os
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import NotFoundError, StorageInitError, StorageIOError, ValidationError
from .models import AttemptRecord

COLLECTIONS = ('attempts', 'users', 'settings')
SORT_KEYS = ('date', 'score')
UPDATABLE_FIELDS = {'participant_name', 'character_label', 'score', 'total_questions', 'completed_at', 'extra'}
DEFAULT_RETENTION = timedelta(days=30)


class AttemptStore:
    """In-memory attempt store; persistent backends override _load and _persist."""

    def __init__(self, retention: timedelta = DEFAULT_RETENTION, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the store.

        Args:
            retention: Age beyond which prune() removes attempts
            clock: Returns the current time; datetime.now if None
        """
        self.logger = logging.getLogger(__name__)
        self.retention = retention
        self._now = clock or datetime.now
        self._data: Dict[str, Any] = self._empty()
        self._lock = asyncio.Lock()
        self._opened = False

    @staticmethod
    def _empty() -> Dict[str, Any]:
        return {'next_id': 1, 'attempts': [], 'users': [], 'settings': []}

    async def open(self) -> None:
        """Load existing contents; safe to call more than once."""
        if self._opened:
            return
        self._data = await self._load()
        self._opened = True
        self.logger.info(f"Attempt store opened with {len(self._data['attempts'])} attempts")

    async def close(self) -> None:
        self._opened = False

    async def _load(self) -> Dict[str, Any]:
        return self._empty()

    async def _persist(self, data: Dict[str, Any]) -> None:
        """Write data durably; raise StorageIOError on failure."""
        return None

    async def _commit(self, data: Dict[str, Any]) -> None:
        await self._persist(data)
        self._data = data

    def _working_copy(self) -> Dict[str, Any]:
        return {
            'next_id': self._data['next_id'],
            'attempts': list(self._data['attempts']),
            'users': list(self._data['users']),
            'settings': list(self._data['settings'])
        }

    async def create(self, record: AttemptRecord) -> AttemptRecord:
        """
        Append a new attempt and assign its identifier.

        Args:
            record: Attempt to store; its id is ignored

        Returns:
            Copy of the stored record with id and last_modified set

        Raises:
            ValidationError: If the score is outside 0..total_questions
            StorageIOError: If the write fails
        """
        if record.total_questions < 0 or not 0 <= record.score <= record.total_questions:
            raise ValidationError(f"Invalid score {record.score}/{record.total_questions}")

        async with self._lock:
            await self.open()
            data = self._working_copy()
            stored = replace(copy.deepcopy(record), id=data['next_id'], last_modified=self._now())
            data['attempts'].append(stored)
            data['next_id'] += 1
            await self._commit(data)

        self.logger.info(f"Created attempt {stored.id} for {stored.participant_name} ({stored.score}/{stored.total_questions})")
        return copy.deepcopy(stored)

    async def update(self, attempt_id: int, **fields) -> AttemptRecord:
        """
        Merge fields into an existing attempt.

        Raises:
            NotFoundError: If no attempt has this id
            ValidationError: If a field cannot be updated
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        self._validate_fields(fields)

        async with self._lock:
            await self.open()
            data = self._working_copy()
            for index, existing in enumerate(data['attempts']):
                if existing.id == attempt_id:
                    updated = replace(existing, **copy.deepcopy(fields), last_modified=self._now())
                    if not 0 <= updated.score <= updated.total_questions:
                        raise ValidationError(f"Invalid score {updated.score}/{updated.total_questions}")
                    data['attempts'][index] = updated
                    break
            else:
                raise NotFoundError(f"Attempt with ID {attempt_id} not found")
            await self._commit(data)

        self.logger.debug(f"Updated attempt {attempt_id}: {sorted(fields)}")
        return copy.deepcopy(updated)

    @staticmethod
    def _validate_fields(fields: Dict[str, Any]) -> None:
        for name in ('participant_name', 'character_label'):
            if name in fields and not isinstance(fields[name], str):
                raise ValidationError(f"'{name}' must be a string")
        for name in ('score', 'total_questions'):
            value = fields.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"'{name}' must be a non-negative integer")
        if 'completed_at' in fields and not isinstance(fields['completed_at'], datetime):
            raise ValidationError("'completed_at' must be a datetime")
        if 'extra' in fields and not isinstance(fields['extra'], dict):
            raise ValidationError("'extra' must be a dictionary")

    async def get(self, attempt_id: int) -> AttemptRecord:
        """Return one attempt; NotFoundError if absent."""
        async with self._lock:
            await self.open()
            for record in self._data['attempts']:
                if record.id == attempt_id:
                    return copy.deepcopy(record)
        raise NotFoundError(f"Attempt with ID {attempt_id} not found")

    async def query_all(
        self,
        sort_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[AttemptRecord]:
        """
        Return every attempt, optionally sorted and limited.

        Args:
            sort_by: 'date' or 'score'; insertion order if None
            descending: Reverse the order
            limit: Maximum number of attempts returned

        Returns:
            List of attempts. Score ties keep completion time ascending.
        """
        if sort_by is not None and sort_by not in SORT_KEYS:
            raise ValidationError(f"Cannot sort by '{sort_by}'. Use one of: {', '.join(SORT_KEYS)}")
        if limit is not None and limit < 0:
            raise ValidationError("Limit cannot be negative")

        async with self._lock:
            await self.open()
            results = list(self._data['attempts'])

        if sort_by == 'score':
            results.sort(key=lambda r: (r.completed_at, r.id))
            results.sort(key=lambda r: r.score, reverse=descending)
        elif sort_by == 'date':
            results.sort(key=lambda r: (r.completed_at, r.id), reverse=descending)
        elif descending:
            results.reverse()

        if limit is not None:
            results = results[:limit]
        return copy.deepcopy(results)

    async def query_range(self, start: datetime, end: datetime) -> List[AttemptRecord]:
        """Return attempts completed within [start, end], oldest first."""
        if start > end:
            raise ValidationError("Range start must not be after range end")

        async with self._lock:
            await self.open()
            results = [r for r in self._data['attempts'] if start <= r.completed_at <= end]

        results.sort(key=lambda r: (r.completed_at, r.id))
        return copy.deepcopy(results)

    async def delete(self, attempt_id: int) -> bool:
        """
        Remove an attempt.

        Returns:
            True if an attempt was removed, False if none had this id
        """
        async with self._lock:
            await self.open()
            data = self._working_copy()
            remaining = [r for r in data['attempts'] if r.id != attempt_id]
            if len(remaining) == len(data['attempts']):
                return False
            data['attempts'] = remaining
            await self._commit(data)

        self.logger.info(f"Deleted attempt {attempt_id}")
        return True

    async def prune(self, retention: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
        """
        Remove attempts completed at or before the retention cutoff.

        Args:
            retention: Overrides the store's retention window
            now: Reference time; the store clock if None

        Returns:
            Number of attempts removed
        """
        cutoff = (now or self._now()) - (retention if retention is not None else self.retention)

        async with self._lock:
            await self.open()
            data = self._working_copy()
            kept = [r for r in data['attempts'] if r.completed_at > cutoff]
            removed = len(data['attempts']) - len(kept)
            if removed:
                data['attempts'] = kept
                await self._commit(data)

        self.logger.info(f"Pruned {removed} attempts completed before {cutoff.isoformat()}")
        return removed

    async def clear(self) -> None:
        """Empty every collection in one write."""
        async with self._lock:
            await self.open()
            data = self._empty()
            # Identifiers stay monotonic across clears
            data['next_id'] = self._data['next_id']
            await self._commit(data)

        self.logger.info("Attempt store cleared")

    async def collection_sizes(self) -> Dict[str, int]:
        async with self._lock:
            await self.open()
            return {name: len(self._data[name]) for name in COLLECTIONS}


class JsonAttemptStore(AttemptStore):
    """Attempt store persisted as a single JSON document."""

    def __init__(self, path: str = "./data/attempts.json", **kwargs):
        super().__init__(**kwargs)
        self.path = Path(path)

    async def _load(self) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self._read_file)
        except StorageInitError:
            raise
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Failed to open attempt store {self.path}: {e}")
            raise StorageInitError(f"Failed to open attempt store {self.path}: {e}") from e

    def _read_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            data = self._empty()
            self._write_file(self._serialize(data))
            self.logger.info(f"Created attempt store file: {self.path}")
            return data

        with open(self.path, 'r', encoding='utf-8') as f:
            raw = json.load(f)

        if not isinstance(raw, dict):
            raise StorageInitError(f"Attempt store {self.path} must contain a JSON object")

        data = self._empty()
        data['attempts'] = [AttemptRecord.from_dict(item) for item in raw.get('attempts', [])]
        data['users'] = list(raw.get('users', []))
        data['settings'] = list(raw.get('settings', []))
        highest_id = max((r.id or 0 for r in data['attempts']), default=0)
        data['next_id'] = max(int(raw.get('next_id', 1)), highest_id + 1)
        return data

    async def _persist(self, data: Dict[str, Any]) -> None:
        try:
            text = self._serialize(data)
            await asyncio.to_thread(self._write_file, text)
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to write attempt store {self.path}: {e}")
            raise StorageIOError(f"Failed to write attempt store {self.path}: {e}") from e

    @staticmethod
    def _serialize(data: Dict[str, Any]) -> str:
        payload = {
            'next_id': data['next_id'],
            'attempts': [record.to_dict() for record in data['attempts']],
            'users': data['users'],
            'settings': data['settings']
        }
        return json.dumps(payload, indent=2, ensure_ascii=False)

    def _write_file(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".attempts-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
            os.replace(temp_path, self.path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
