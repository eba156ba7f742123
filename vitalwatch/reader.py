import logging
from pathlib import Path
from typing import Union

from .channel import parse_int, parse_value
from .errors import ParseError
from .models import Measurement, VitalKind
from .store import MeasurementStore

logger = logging.getLogger(__name__)


def parse_output_line(line: str) -> Measurement:
    """
    Parse one line of the generators' file output, e.g.

        Patient ID: 1, Timestamp: 1714376789050, Label: HeartRate, Data: 85.0
    """
    fields = {}
    for part in line.strip().split(", "):
        key, sep, value = part.partition(": ")
        if not sep:
            raise ParseError(f"field without label: {part!r}", raw=line)
        fields[key.strip()] = value.strip()
    try:
        return Measurement(
            patient_id=parse_int(fields["Patient ID"], line),
            timestamp=parse_int(fields["Timestamp"], line),
            kind=VitalKind(fields["Label"]),
            value=parse_value(fields["Data"], line),
        )
    except KeyError as e:
        raise ParseError(f"missing field {e}", raw=line) from e
    except ValueError as e:
        raise ParseError(str(e), raw=line) from e


class FileDataReader:
    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def read_into(self, store: MeasurementStore) -> int:
        """Load every *.txt file in the directory; returns the number of new records."""
        if not self.directory.is_dir():
            raise FileNotFoundError(f"Invalid output directory: {self.directory}")
        added = 0
        for path in sorted(self.directory.glob("*.txt")):
            with path.open(encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, 1):
                    if not line.strip():
                        continue
                    try:
                        m = parse_output_line(line)
                    except ParseError as e:
                        logger.warning("%s:%d skipped: %s", path.name, lineno, e)
                        continue
                    if store.append(m.patient_id, m.value, m.kind, m.timestamp):
                        added += 1
        logger.info("Loaded %d records from %s", added, self.directory)
        return added
