from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class VitalKind(str, Enum):
    SYSTOLIC = "SystolicPressure"
    DIASTOLIC = "DiastolicPressure"
    HEART_RATE = "HeartRate"
    SATURATION = "Saturation"
    CHOLESTEROL = "Cholesterol"
    WHITE_BLOOD_CELLS = "WhiteBloodCells"
    RED_BLOOD_CELLS = "RedBloodCells"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            alias = _ALIASES.get(value.strip().lower())
            if alias is not None:
                return cls(alias)
        return None


# lower-cased tag -> canonical wire tag
_ALIASES = {
    "systolicpressure": "SystolicPressure",
    "systolicbp": "SystolicPressure",
    "diastolicpressure": "DiastolicPressure",
    "diastolicbp": "DiastolicPressure",
    "heartrate": "HeartRate",
    "saturation": "Saturation",
    "oxygensaturation": "Saturation",
    "cholesterol": "Cholesterol",
    "whitebloodcells": "WhiteBloodCells",
    "redbloodcells": "RedBloodCells",
}


@dataclass(frozen=True)
class Measurement:
    patient_id: int
    kind: VitalKind
    value: float
    timestamp: int  # ms since epoch

    def to_line(self) -> str:
        return f"{self.patient_id},{self.timestamp},{self.kind.value},{self.value}"

    def to_dict(self) -> dict:
        return {
            "patient_id": self.patient_id,
            "kind": self.kind.value,
            "value": self.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Alert:
    patient_id: str
    condition: str
    timestamp: int

    def as_triple(self) -> Tuple[str, str, int]:
        return self.patient_id, self.condition, self.timestamp
