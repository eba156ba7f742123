from concurrent.futures import ThreadPoolExecutor

import pytest

from vitalwatch.models import Measurement, VitalKind
from vitalwatch.store import MeasurementStore, PatientSeries


def test_duplicate_append_is_noop(store):
    assert store.append(1, 80.0, VitalKind.HEART_RATE, 1000) is True
    assert store.append(1, 95.0, VitalKind.HEART_RATE, 1000) is False
    records = store.query(1, 0, 2000)
    assert len(records) == 1
    assert records[0].value == 80.0


def test_same_timestamp_different_kind_both_kept(store):
    store.append(1, 120.0, VitalKind.SYSTOLIC, 1000)
    store.append(1, 80.0, VitalKind.DIASTOLIC, 1000)
    assert len(store.query(1, 1000, 1000)) == 2


def test_query_range_is_inclusive(store, fill):
    fill(store, 7, VitalKind.HEART_RATE, [(70, 100), (71, 200), (72, 300), (73, 400)])
    got = [r.timestamp for r in store.query(7, 200, 300)]
    assert got == [200, 300]


def test_unknown_patient_yields_empty(store):
    assert store.query(404, 0, 10 ** 12) == []
    assert store.latest(404) is None
    assert 404 not in store


def test_query_keeps_insertion_order_unless_ordered(store, fill):
    fill(store, 1, VitalKind.SATURATION, [(97, 300), (96, 100), (95, 200)])
    assert [r.timestamp for r in store.query(1, 0, 1000)] == [300, 100, 200]
    assert [r.timestamp for r in store.query(1, 0, 1000, ordered=True)] == [100, 200, 300]


def test_query_by_kind_and_filter(store):
    store.append(3, 120.0, VitalKind.SYSTOLIC, 10)
    store.append(3, 70.0, VitalKind.HEART_RATE, 10)
    store.append(3, 125.0, VitalKind.SYSTOLIC, 20)

    systolic = store.query(3, 0, 100, kind=VitalKind.SYSTOLIC)
    assert [r.value for r in systolic] == [120.0, 125.0]

    everything = store.query(3, 0, 100)
    assert [r.value for r in MeasurementStore.filter_by_kind(VitalKind.HEART_RATE, everything)] == [70.0]


def test_append_accepts_wire_tags(store):
    store.append(1, 130.0, "SystolicBP", 5)
    assert store.query(1, 0, 10)[0].kind is VitalKind.SYSTOLIC


def test_unknown_kind_rejected(store):
    with pytest.raises(ValueError):
        store.append(1, 1.0, "BodyTemperature", 5)


def test_all_patients_and_latest(store):
    store.append(1, 70.0, VitalKind.HEART_RATE, 100)
    store.append(1, 75.0, VitalKind.HEART_RATE, 300)
    store.append(1, 98.0, VitalKind.SATURATION, 200)
    store.append(2, 60.0, VitalKind.HEART_RATE, 100)

    assert sorted(store.all_patients()) == [1, 2]
    assert store.latest(1).timestamp == 300
    assert store.latest(1, VitalKind.SATURATION).value == 98.0


def test_query_returns_a_copy(store):
    store.append(1, 70.0, VitalKind.HEART_RATE, 100)
    out = store.query(1, 0, 1000)
    out.clear()
    assert len(store.query(1, 0, 1000)) == 1


def test_measurement_is_immutable():
    m = Measurement(1, VitalKind.HEART_RATE, 70.0, 1)
    with pytest.raises(AttributeError):
        m.value = 80.0


def test_series_range_and_len():
    s = PatientSeries(9)
    s.append(Measurement(9, VitalKind.HEART_RATE, 70.0, 1))
    s.append(Measurement(9, VitalKind.HEART_RATE, 71.0, 2))
    assert len(s) == 2
    assert [m.timestamp for m in s.range(2, 2)] == [2]


class TestConcurrency:

    def test_distinct_patients_lose_no_writes(self, store):
        n_patients, per_patient = 50, 40

        def write(pid):
            for ts in range(per_patient):
                store.append(pid, 60.0 + ts, VitalKind.HEART_RATE, ts)

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(write, range(n_patients)))

        assert len(store.all_patients()) == n_patients
        for pid in range(n_patients):
            records = store.query(pid, 0, per_patient)
            assert len(records) == per_patient
            assert all(r.patient_id == pid for r in records)
            assert sorted(r.value for r in records) == [60.0 + ts for ts in range(per_patient)]

    def test_racing_duplicates_collapse_to_one(self, store):
        def write(i):
            return store.append(5, 90.0 + i, VitalKind.SATURATION, 12345)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(write, range(200)))

        assert results.count(True) == 1
        assert len(store.query(5, 0, 10 ** 6)) == 1

    def test_readers_run_alongside_writers(self, store):
        def write(ts):
            store.append(1, 70.0, VitalKind.HEART_RATE, ts)

        def read(_):
            return store.query(1, 0, 10 ** 6)

        with ThreadPoolExecutor(max_workers=8) as pool:
            writes = [pool.submit(write, ts) for ts in range(500)]
            reads = [pool.submit(read, i) for i in range(100)]
            for f in writes + reads:
                f.result()

        assert len(store.query(1, 0, 10 ** 6)) == 500
