"""
Alert evaluation: strategy dispatch, per-patient sweeps and the periodic sweep worker.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import InvalidStateError
from .models import Alert, Measurement, VitalKind
from .store import MeasurementStore
from .strategies import (
    DIASTOLIC_THRESHOLDS,
    SYSTOLIC_THRESHOLDS,
    AlertStrategy,
    BloodPressureStrategy,
    HeartRateStrategy,
    OxygenSaturationStrategy,
)

logger = logging.getLogger(__name__)

AlertSink = Callable[[str, str, int], None]


class AlertContext:
    def __init__(self, strategy: AlertStrategy):
        self.set_strategy(strategy)

    def set_strategy(self, strategy: AlertStrategy):
        if strategy is None:
            raise InvalidStateError("AlertContext requires a strategy")
        self.strategy = strategy

    def run(self, patient_id, window: Sequence[Measurement]) -> Optional[Alert]:
        return self.strategy.evaluate(patient_id, window)


def default_routes(rapid_drop_interval_ms: int = 600_000) -> List[Tuple[VitalKind, AlertStrategy]]:
    return [
        (VitalKind.SYSTOLIC, BloodPressureStrategy(SYSTOLIC_THRESHOLDS)),
        (VitalKind.DIASTOLIC, BloodPressureStrategy(DIASTOLIC_THRESHOLDS)),
        (VitalKind.HEART_RATE, HeartRateStrategy()),
        (VitalKind.SATURATION, OxygenSaturationStrategy(drop_interval_ms=rapid_drop_interval_ms)),
    ]


class Evaluator:
    """Runs every routed strategy over a patient's time-ordered records."""

    def __init__(
        self,
        store: MeasurementStore,
        sink: Optional[AlertSink] = None,
        routes: Optional[List[Tuple[VitalKind, AlertStrategy]]] = None,
    ):
        self.store = store
        self.sink = sink
        self.routes = routes if routes is not None else default_routes()

    def sweep(self, patient_id: int, start: int, end: int) -> List[Alert]:
        records = self.store.query(patient_id, start, end, ordered=True)
        if not records:
            return []

        by_kind: Dict[VitalKind, List[Measurement]] = {}
        for r in records:
            by_kind.setdefault(r.kind, []).append(r)

        alerts: List[Alert] = []
        for kind, strategy in self.routes:
            alert = AlertContext(strategy).run(patient_id, by_kind.get(kind, []))
            if alert is None:
                continue
            alerts.append(alert)
            self._emit(alert)
        return alerts

    def sweep_all(self, start: int, end: int) -> List[Alert]:
        out: List[Alert] = []
        for pid in self.store.all_patients():
            out.extend(self.sweep(pid, start, end))
        return out

    def _emit(self, alert: Alert):
        if self.sink is None:
            return
        try:
            self.sink(*alert.as_triple())
        except Exception:
            logger.exception("Alert sink failed for patient %s", alert.patient_id)


class EvaluationWorker:
    """Sweeps all patients every `interval` seconds over the trailing `lookback_ms`."""

    def __init__(self, evaluator: Evaluator, interval: float = 5.0, lookback_ms: int = 3_600_000,
                 clock: Callable[[], float] = time.time):
        self.evaluator = evaluator
        self.interval = interval
        self.lookback_ms = lookback_ms
        self.clock = clock
        self.running = False
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> List[Alert]:
        now_ms = int(self.clock() * 1000)
        return self.evaluator.sweep_all(now_ms - self.lookback_ms, now_ms)

    async def _loop(self):
        while self.running:
            try:
                alerts = await asyncio.to_thread(self.run_once)
                if alerts:
                    logger.info("Evaluation cycle raised %d alert(s)", len(alerts))
            except Exception:
                logger.exception("Evaluation cycle failed")
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        self.running = True
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Evaluation worker started (interval=%ss)", self.interval)
        return self._task

    async def stop(self):
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Evaluation worker stopped")
