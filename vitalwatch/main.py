import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .channel import ConnectionHub, ingest
from .config import Settings
from .evaluator import EvaluationWorker, Evaluator, default_routes
from .models import VitalKind
from .reader import FileDataReader
from .sinks import AlertEventLog, HttpNotifySink, fan_out, log_sink
from .store import MeasurementStore

logger = logging.getLogger(__name__)

MAX_TS = 2 ** 63 - 1


def _kind_or_400(kind: Optional[str]) -> Optional[VitalKind]:
    if kind is None:
        return None
    try:
        return VitalKind(kind)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown kind {kind!r}")


def create_app(settings: Optional[Settings] = None, store: Optional[MeasurementStore] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store if store is not None else MeasurementStore()

    events = AlertEventLog(settings.events_db_url)
    sinks = [log_sink, events]
    if settings.notify_url:
        sinks.append(HttpNotifySink(settings.notify_url))
    evaluator = Evaluator(store, fan_out(*sinks), default_routes(settings.rapid_drop_interval_ms))
    worker = EvaluationWorker(evaluator, settings.evaluation_interval, settings.evaluation_lookback_ms)
    hub = ConnectionHub(settings.broadcast_queue_size, settings.send_timeout)

    app = FastAPI(title="Vitalwatch API", version="1.0.0")
    app.state.settings = settings
    app.state.store = store
    app.state.events = events
    app.state.evaluator = evaluator
    app.state.worker = worker
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.ws_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup():
        if settings.preload_dir:
            FileDataReader(settings.preload_dir).read_into(store)
        if settings.evaluation_interval > 0:
            worker.start()

    @app.on_event("shutdown")
    async def shutdown():
        await worker.stop()
        await hub.close()
        events.dispose()

    @app.get("/patients")
    def get_patients():
        return sorted(store.all_patients())

    @app.get("/patients/{patient_id}/records")
    def get_records(
        patient_id: int,
        start: int = 0,
        end: int = MAX_TS,
        kind: Optional[str] = None,
        ordered: bool = False,
    ):
        records = store.query(patient_id, start, end, kind=_kind_or_400(kind), ordered=ordered)
        return [r.to_dict() for r in records]

    @app.get("/patients/{patient_id}/latest")
    def get_latest(patient_id: int, kind: Optional[str] = None):
        r = store.latest(patient_id, _kind_or_400(kind))
        if not r:
            return None
        return r.to_dict()

    @app.post("/patients/{patient_id}/evaluate")
    def evaluate(patient_id: int, start: int = 0, end: Optional[int] = None):
        end = end if end is not None else int(time.time() * 1000)
        alerts = evaluator.sweep(patient_id, start, end)
        return [{"patient_id": a.patient_id, "condition": a.condition, "timestamp": a.timestamp} for a in alerts]

    @app.get("/alerts")
    def get_alerts(patient_id: Optional[str] = Query(None), limit: int = 50):
        return events.recent(patient_id, limit=limit)

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        peer = await hub.connect(ws)
        if peer is None:
            return
        try:
            while True:
                frame = await ws.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                message = frame.get("text")
                if message is None:
                    data = frame.get("bytes") or b""
                    try:
                        message = data.decode("utf-8")
                    except UnicodeDecodeError:
                        logger.warning("Dropping undecodable binary message %r", data)
                        continue
                if ingest(store, message) is not None:
                    hub.broadcast(message, sender=peer)
        finally:
            await hub.disconnect(peer)

    return app
