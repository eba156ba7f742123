import logging
from typing import Callable, List, Optional

import requests
from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

logger = logging.getLogger(__name__)

Base = declarative_base()

Sink = Callable[[str, str, int], None]


class AlertEventRow(Base):
    __tablename__ = "alert_events"
    id = Column(Integer, primary_key=True)
    patient_id = Column(String, index=True, nullable=False)
    condition = Column(Text, nullable=False)
    timestamp = Column(BigInteger, index=True, nullable=False)  # ms, when the reading fired
    logged_at = Column(DateTime(timezone=True), server_default=func.now())


def log_sink(patient_id: str, condition: str, timestamp: int):
    logger.warning("ALERT patient=%s condition=%s time=%s", patient_id, condition, timestamp)


class AlertEventLog:
    """Alert timeline; the default URL is an in-memory database that lives with the process."""

    def __init__(self, db_url: str = "sqlite://"):
        kwargs = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if db_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(db_url, **kwargs)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)

    def __call__(self, patient_id: str, condition: str, timestamp: int):
        self.record(patient_id, condition, timestamp)

    def record(self, patient_id: str, condition: str, timestamp: int):
        with self.Session() as s:
            s.add(AlertEventRow(patient_id=str(patient_id), condition=condition, timestamp=int(timestamp)))
            s.commit()

    def recent(self, patient_id: Optional[str] = None, limit: int = 50) -> List[dict]:
        with self.Session() as s:
            q = s.query(AlertEventRow)
            if patient_id is not None:
                q = q.filter(AlertEventRow.patient_id == str(patient_id))
            rows = q.order_by(AlertEventRow.timestamp.desc(), AlertEventRow.id.desc()).limit(limit).all()
            return [{
                "patient_id": r.patient_id,
                "condition": r.condition,
                "timestamp": r.timestamp,
                "logged_at": r.logged_at.isoformat() if r.logged_at else "",
            } for r in rows]

    def dispose(self):
        self.engine.dispose()


class HttpNotifySink:
    def __init__(self, url: str, timeout: float = 1.5):
        self.url = url
        self.timeout = timeout

    def __call__(self, patient_id: str, condition: str, timestamp: int):
        try:
            requests.post(
                self.url,
                json={"patient_id": patient_id, "condition": condition, "timestamp": timestamp},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            # monitoring keeps going when the notify service is down
            logger.warning("Notify to %s failed: %s", self.url, e)


def fan_out(*sinks: Sink) -> Sink:
    def _sink(patient_id: str, condition: str, timestamp: int):
        for sink in sinks:
            try:
                sink(patient_id, condition, timestamp)
            except Exception:
                logger.exception("Alert sink %r failed", sink)
    return _sink
