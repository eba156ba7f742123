from .models import Alert, Measurement, VitalKind
from .store import MeasurementStore, PatientSeries

__all__ = ["Alert", "Measurement", "VitalKind", "MeasurementStore", "PatientSeries"]
