from vitalwatch.frames import alerts_frame, records_frame, vitals_wide

RECORDS = [
    {"patient_id": 1, "kind": "HeartRate", "value": 72.0, "timestamp": 2000},
    {"patient_id": 1, "kind": "Saturation", "value": 97.0, "timestamp": 1000},
    {"patient_id": 1, "kind": "HeartRate", "value": 70.0, "timestamp": 1000},
]


def test_records_frame_sorted_with_time():
    df = records_frame(RECORDS)
    assert list(df["timestamp"]) == [1000, 1000, 2000]
    assert str(df["time"].iloc[0]) == "1970-01-01 00:00:01+00:00"


def test_vitals_wide():
    wide = vitals_wide(RECORDS)
    assert sorted(wide.columns) == ["HeartRate", "Saturation"]
    assert list(wide["HeartRate"]) == [70.0, 72.0]
    assert len(wide) == 2


def test_empty_inputs():
    assert records_frame([]).empty
    assert vitals_wide([]).empty
    assert alerts_frame([]).empty
