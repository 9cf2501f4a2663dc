"""Process-local read cache for computed API responses.

Entries expire a fixed number of seconds after insertion whether or not they
are invalidated. Write paths call ``invalidate`` for every key whose answer
they may have changed before returning to the client.

Every key also carries a generation number that ``invalidate`` bumps. A reader
that missed records ``generation(key)`` before querying storage and passes it
back to ``set``; the fill is dropped if the key was invalidated in between, so
a slow read can never republish data older than a completed write.
"""

import logging
import time
from threading import Lock
from typing import Any, Callable

from fastapi import Request

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30


class ResponseCache:
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[float, Any]] = {}
        self._generations: dict[str, int] = {}
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = Lock()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug('Cache miss: %s', key)
                return None

            inserted_at, value = entry
            if self._clock() - inserted_at >= self._ttl:
                del self._entries[key]
                logger.debug('Cache expired: %s', key)
                return None

        logger.debug('Cache hit: %s', key)
        return value

    def generation(self, key: str) -> int:
        with self._lock:
            return self._generations.get(key, 0)

    def set(self, key: str, value: Any, generation: int | None = None) -> bool:
        with self._lock:
            if generation is not None and generation != self._generations.get(key, 0):
                logger.debug('Cache set skipped: %s was invalidated during the read', key)
                return False
            self._entries[key] = (self._clock(), value)
        logger.debug('Cache set: %s (ttl=%ss)', key, self._ttl)
        return True

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)
                self._generations[key] = self._generations.get(key, 0) + 1
        logger.debug('Cache invalidate: %s', ', '.join(keys))

    def clear(self) -> None:
        with self._lock:
            for key in self._entries:
                self._generations[key] = self._generations.get(key, 0) + 1
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def patient_appointments_key(patient_id: int) -> str:
    return f'appointments_patient_{patient_id}'


def doctor_appointments_key(doctor_id: int) -> str:
    return f'appointments_doctor_{doctor_id}'


def record_key(record_id: int) -> str:
    return f'record_{record_id}'


def patient_records_key(patient_id: int) -> str:
    return f'records_patient_{patient_id}'


def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.response_cache
