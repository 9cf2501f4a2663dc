from backend.core.cache import (
    ResponseCache,
    doctor_appointments_key,
    patient_appointments_key,
    patient_records_key,
    record_key,
)


def test_get_returns_none_on_miss(cache: ResponseCache) -> None:
    assert cache.get('appointments_patient_1') is None


def test_set_then_get_returns_value(cache: ResponseCache) -> None:
    cache.set('appointments_patient_1', [{'appointmentId': 1}])

    assert cache.get('appointments_patient_1') == [{'appointmentId': 1}]


def test_entry_expires_thirty_seconds_after_insertion(cache: ResponseCache, clock) -> None:
    cache.set('key', 'value')

    clock.advance(29)
    assert cache.get('key') == 'value'

    clock.advance(1)
    assert cache.get('key') is None
    assert len(cache) == 0


def test_reading_does_not_extend_lifetime(cache: ResponseCache, clock) -> None:
    cache.set('key', 'value')
    for _ in range(3):
        clock.advance(10)
        cache.get('key')

    assert cache.get('key') is None


def test_set_restarts_lifetime(cache: ResponseCache, clock) -> None:
    cache.set('key', 'old')
    clock.advance(20)
    cache.set('key', 'new')
    clock.advance(20)

    assert cache.get('key') == 'new'


def test_invalidate_removes_only_named_keys(cache: ResponseCache) -> None:
    cache.set('a', 1)
    cache.set('b', 2)
    cache.set('c', 3)

    cache.invalidate('a', 'b', 'missing')

    assert cache.get('a') is None
    assert cache.get('b') is None
    assert cache.get('c') == 3


def test_clear_empties_cache(cache: ResponseCache) -> None:
    cache.set('a', 1)
    cache.clear()

    assert len(cache) == 0


def test_default_ttl_is_thirty_seconds() -> None:
    assert ResponseCache().ttl_seconds == 30


def test_keys_are_namespaced_by_purpose() -> None:
    assert patient_appointments_key(7) == 'appointments_patient_7'
    assert doctor_appointments_key(7) == 'appointments_doctor_7'
    assert record_key(7) == 'record_7'
    assert patient_records_key(7) == 'records_patient_7'
    assert len({patient_appointments_key(7), doctor_appointments_key(7), record_key(7), patient_records_key(7)}) == 4


def test_fill_is_dropped_when_key_was_invalidated_during_read(cache: ResponseCache) -> None:
    generation = cache.generation('appointments_patient_1')

    cache.invalidate('appointments_patient_1')

    assert cache.set('appointments_patient_1', ['stale'], generation) is False
    assert cache.get('appointments_patient_1') is None


def test_fill_is_kept_when_key_was_not_invalidated(cache: ResponseCache) -> None:
    generation = cache.generation('appointments_patient_1')

    cache.invalidate('appointments_doctor_5')

    assert cache.set('appointments_patient_1', ['fresh'], generation) is True
    assert cache.get('appointments_patient_1') == ['fresh']


def test_clear_also_drops_in_flight_fills(cache: ResponseCache) -> None:
    cache.set('record_7', 'old')
    generation = cache.generation('record_7')

    cache.clear()

    assert cache.set('record_7', 'stale', generation) is False
