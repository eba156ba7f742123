"""
In-memory per-patient measurement store.

The store-level lock only guards the id -> series mapping; each PatientSeries carries
its own reader/writer guard so traffic for different patients never contends.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Measurement, VitalKind

logger = logging.getLogger(__name__)


class _ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class PatientSeries:
    """Insertion-ordered measurements for one patient, unique on (kind, timestamp)."""

    def __init__(self, patient_id: int):
        self.patient_id = patient_id
        self._records: List[Measurement] = []
        self._seen: Set[Tuple[VitalKind, int]] = set()
        self._lock = _ReadWriteLock()

    def append(self, m: Measurement) -> bool:
        key = (m.kind, m.timestamp)
        with self._lock.write():
            if key in self._seen:
                return False
            self._seen.add(key)
            self._records.append(m)
            return True

    def snapshot(self) -> List[Measurement]:
        with self._lock.read():
            return list(self._records)

    def range(self, start: int, end: int) -> List[Measurement]:
        with self._lock.read():
            return [r for r in self._records if start <= r.timestamp <= end]

    def latest(self, kind: Optional[VitalKind] = None) -> Optional[Measurement]:
        with self._lock.read():
            best = None
            for r in self._records:
                if kind is not None and r.kind is not kind:
                    continue
                if best is None or r.timestamp >= best.timestamp:
                    best = r
            return best

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)


class MeasurementStore:
    def __init__(self):
        self._series: Dict[int, PatientSeries] = {}
        self._lock = threading.Lock()

    def _series_for(self, patient_id: int) -> PatientSeries:
        series = self._series.get(patient_id)
        if series is not None:
            return series
        with self._lock:
            series = self._series.get(patient_id)
            if series is None:
                series = self._series[patient_id] = PatientSeries(patient_id)
                logger.debug("New patient series %s", patient_id)
            return series

    def append(self, patient_id: int, value: float, kind: VitalKind, timestamp: int) -> bool:
        """
        Store one reading. Returns False when the exact (patient, kind, timestamp)
        triple is already stored, in which case nothing changes.
        """
        m = Measurement(patient_id=int(patient_id), kind=VitalKind(kind), value=float(value), timestamp=int(timestamp))
        return self._series_for(m.patient_id).append(m)

    def query(
        self,
        patient_id: int,
        start: int,
        end: int,
        kind: Optional[VitalKind] = None,
        ordered: bool = False,
    ) -> List[Measurement]:
        """
        Measurements with start <= timestamp <= end, in insertion order unless
        ordered=True. Unknown patients yield an empty list.
        """
        series = self._series.get(patient_id)
        if series is None:
            return []
        out = series.range(start, end)
        if kind is not None:
            out = self.filter_by_kind(kind, out)
        if ordered:
            out.sort(key=lambda r: r.timestamp)
        return out

    @staticmethod
    def filter_by_kind(kind: VitalKind, measurements: Iterable[Measurement]) -> List[Measurement]:
        kind = VitalKind(kind)
        return [m for m in measurements if m.kind is kind]

    def latest(self, patient_id: int, kind: Optional[VitalKind] = None) -> Optional[Measurement]:
        series = self._series.get(patient_id)
        if series is None:
            return None
        return series.latest(VitalKind(kind) if kind is not None else None)

    def all_patients(self) -> List[int]:
        with self._lock:
            return list(self._series.keys())

    def clear(self):
        with self._lock:
            self._series.clear()

    def __contains__(self, patient_id) -> bool:
        return patient_id in self._series

    def __len__(self) -> int:
        return len(self._series)
