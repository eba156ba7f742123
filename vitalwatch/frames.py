"""Tabular views of API payloads for the dashboard."""

from typing import Dict, List

import pandas as pd

RECORD_COLUMNS = ["patient_id", "kind", "value", "timestamp"]
ALERT_COLUMNS = ["patient_id", "condition", "timestamp", "logged_at"]


def records_frame(records: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(records, columns=RECORD_COLUMNS)
    if df.empty:
        return df
    df["time"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


def vitals_wide(records: List[Dict]) -> pd.DataFrame:
    """One row per timestamp, one column per vital kind."""
    df = records_frame(records)
    if df.empty:
        return pd.DataFrame()
    wide = df.pivot_table(index="time", columns="kind", values="value", aggfunc="last")
    wide.columns.name = None
    return wide


def alerts_frame(events: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(events, columns=ALERT_COLUMNS)
    if not df.empty:
        df["time"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df
