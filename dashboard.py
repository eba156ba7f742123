import os

import requests
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from vitalwatch.frames import alerts_frame, records_frame, vitals_wide

API_URL = os.getenv("VITALWATCH_API", "http://localhost:8080")

st.set_page_config(page_title="Vitalwatch", layout="wide")


def fetch(path: str, **params):
    r = requests.get(f"{API_URL}{path}", params=params, timeout=2.0)
    r.raise_for_status()
    return r.json()


# ---- Sidebar controls ----
st.sidebar.title("Controls")

try:
    patients = fetch("/patients")
except requests.RequestException as e:
    st.error(f"Cannot reach {API_URL}: {e}")
    st.stop()

if not patients:
    st.info("No measurements ingested yet.")
    st.stop()

patient_id = st.sidebar.selectbox("Select patient", patients)
auto = st.sidebar.toggle("Live monitoring", value=True)
interval_ms = st.sidebar.slider("Refresh interval (ms)", 500, 5000, 1000, step=250)

if auto:
    st_autorefresh(interval=interval_ms, key="vw_refresh")

records = fetch(f"/patients/{patient_id}/records", ordered=True)
events = fetch("/alerts", patient_id=patient_id, limit=50)

st.title("Vitalwatch")
st.subheader(f"Patient {patient_id}")

# Latest values
latest = {}
for r in records:
    latest[r["kind"]] = r["value"]

c1, c2, c3 = st.columns(3)
c1.metric("Heart rate (bpm)", f"{latest['HeartRate']:.1f}" if "HeartRate" in latest else "-")
if "SystolicPressure" in latest and "DiastolicPressure" in latest:
    c2.metric("Blood pressure (mmHg)", f"{latest['SystolicPressure']:.0f}/{latest['DiastolicPressure']:.0f}")
else:
    c2.metric("Blood pressure (mmHg)", "-")
c3.metric("SpO₂ (%)", f"{latest['Saturation']:.1f}" if "Saturation" in latest else "-")

wide = vitals_wide(records)
if not wide.empty:
    st.subheader("Trends")
    st.line_chart(wide)

st.subheader("Alert Timeline (latest 50)")
df_ev = alerts_frame(events)
if df_ev.empty:
    st.info("No alerts yet.")
else:
    st.dataframe(df_ev, use_container_width=True, hide_index=True)

st.subheader("Measurements (last 100)")
st.dataframe(records_frame(records).tail(100), use_container_width=True, hide_index=True)
