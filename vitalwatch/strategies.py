from dataclasses import dataclass
from typing import List, Optional, Sequence

from .models import Alert, Measurement


@dataclass(frozen=True)
class Thresholds:
    label: str
    critical_high: float
    critical_low: float
    trend_step: float = 10.0


SYSTOLIC_THRESHOLDS = Thresholds(label="systolic", critical_high=180, critical_low=90)
DIASTOLIC_THRESHOLDS = Thresholds(label="diastolic", critical_high=120, critical_low=60)


class AlertStrategy:
    """
    A detector over one chronologically ordered window of a single vital kind.

    Implementations return at most one Alert (the first match) and must accept
    empty or short windows.
    """

    name = "strategy"

    def evaluate(self, patient_id, window: Sequence[Measurement]) -> Optional[Alert]:
        raise NotImplementedError


class BloodPressureStrategy(AlertStrategy):
    name = "blood_pressure"

    def __init__(self, thresholds: Thresholds = SYSTOLIC_THRESHOLDS):
        self.thresholds = thresholds

    def _trend(self, values: List[float]) -> Optional[str]:
        step = self.thresholds.trend_step
        diffs = [values[k] - values[k + 1] for k in range(3)]
        if all(d > step for d in diffs):
            return "Decreasing trend"
        if all(d < -step for d in diffs):
            return "Increasing trend"
        return None

    def evaluate(self, patient_id, window: Sequence[Measurement]) -> Optional[Alert]:
        th = self.thresholds
        for i, r in enumerate(window):
            if r.value > th.critical_high:
                return Alert(str(patient_id), f"Critical high {th.label} blood pressure ({r.value:g} > {th.critical_high:g})", r.timestamp)
            if r.value < th.critical_low:
                return Alert(str(patient_id), f"Critical low {th.label} blood pressure ({r.value:g} < {th.critical_low:g})", r.timestamp)

            # four consecutive readings ending at i
            if i >= 3:
                trend = self._trend([m.value for m in window[i - 3:i + 1]])
                if trend:
                    return Alert(str(patient_id), f"{trend} in {th.label} blood pressure", r.timestamp)
        return None


class HeartRateStrategy(AlertStrategy):
    """
    Flags the first reading above factor x window mean. The mean includes the
    candidate itself, so a lone outlier raises its own bar.
    """

    name = "heart_rate"

    def __init__(self, factor: float = 1.5):
        self.factor = factor

    def evaluate(self, patient_id, window: Sequence[Measurement]) -> Optional[Alert]:
        if not window:
            return None
        mean = sum(r.value for r in window) / len(window)
        for r in window:
            if r.value > self.factor * mean:
                return Alert(str(patient_id), "Abnormally high heart rate", r.timestamp)
        return None


class OxygenSaturationStrategy(AlertStrategy):
    name = "oxygen_saturation"

    def __init__(self, drop: float = 5.0, drop_interval_ms: int = 600_000, low: float = 92.0):
        self.drop = drop
        self.drop_interval_ms = drop_interval_ms
        self.low = low

    def evaluate(self, patient_id, window: Sequence[Measurement]) -> Optional[Alert]:
        for i, r in enumerate(window):
            if i + 1 < len(window):
                nxt = window[i + 1]
                if r.value - nxt.value > self.drop and nxt.timestamp - r.timestamp > self.drop_interval_ms:
                    return Alert(str(patient_id), "Rapid drop in oxygen saturation", nxt.timestamp)
            if r.value < self.low:
                return Alert(str(patient_id), "Low oxygen saturation", r.timestamp)
        return None
