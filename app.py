import streamlit as st
import pandas as pd
import matplotlib.pyplot as plt

from config import APP, RISK, configure_logging, settings
from errors import DuplicateRecordError, InvalidInputError, PersistError
from records import PatientInput
from sheets import SpreadsheetEndpoint
from service import (
    assess,
    build_context,
    export_csv,
    filter_records,
    load_records,
    push_local_records,
    records_to_frame,
    save_record,
    sync_records,
)
from triage import gauge_zone, risk_badge

st.set_page_config(page_title=APP["title"], layout="wide")
configure_logging()

# -------------------------
# Header + Disclaimer
# -------------------------
st.title(APP["title"])
st.info(APP["disclaimer"])

# -------------------------
# Quick Access Login
# -------------------------
if "ctx" not in st.session_state:
    st.subheader("Quick Access Login")
    email = st.text_input("Clinician email")

    if st.button("Continue"):
        if "@" not in email.strip():
            st.error("Enter a valid email address.")
            st.stop()
        try:
            st.session_state["ctx"] = build_context(settings(), created_by=email.strip())
        except ValueError as exc:
            st.error(f"Storage is misconfigured: {exc}")
            st.stop()
        st.rerun()

    st.stop()

ctx = st.session_state["ctx"]

st.sidebar.success(f"Logged in: {ctx.created_by}")
st.sidebar.caption(f"Storage backend: {ctx.store.name}")
if st.sidebar.button("Logout"):
    ctx.close()
    for k in ["ctx", "assessment"]:
        st.session_state.pop(k, None)
    st.rerun()

tabs = st.tabs(["1) Calculator", "2) Patient Records", "3) Dashboard"])

# -------------------------
# 1) Calculator
# -------------------------
with tabs[0]:
    st.subheader("Patient biometrics")

    full_name = st.text_input("Full Name")
    c1, c2, c3 = st.columns(3)
    with c1:
        age = st.number_input("Age", min_value=1, max_value=120, value=45)
        weight = st.number_input("Weight (kg)", min_value=0.0, max_value=400.0, value=70.0, step=0.5)
        height = st.number_input("Height (m)", min_value=0.0, max_value=2.5, value=1.75, step=0.01)
    with c2:
        gender = st.selectbox("Gender", ["Female", "Male", "Other"])
        glucose = st.number_input("Fasting glucose (mg/dL)", min_value=0.0, max_value=600.0, value=90.0, step=1.0)
        triglycerides = st.number_input("Triglycerides (mg/dL)", min_value=0.0, max_value=2000.0, value=150.0, step=1.0)
    with c3:
        diabetes_status = st.selectbox("Diabetes status", ["No diabetes", "Prediabetes", "Type 1", "Type 2"])
        hdl = st.number_input("HDL (mg/dL)", min_value=0.0, max_value=200.0, value=50.0, step=1.0)
        hba1c = st.number_input("HbA1c (%)", min_value=0.0, max_value=20.0, value=5.5, step=0.1)

    patient = PatientInput(
        full_name=full_name,
        age=int(age),
        gender=gender,
        weight=float(weight),
        height=float(height),
        glucose=float(glucose),
        triglycerides=float(triglycerides),
        hdl=float(hdl),
        hba1c=float(hba1c),
        diabetes_status=diabetes_status,
    )

    if st.button("Calculate risk"):
        try:
            with st.spinner("Generating personalized recommendations..."):
                st.session_state["assessment"] = assess(ctx, patient)
        except InvalidInputError as exc:
            st.session_state.pop("assessment", None)
            st.error(str(exc))

    record = st.session_state.get("assessment")
    if record:
        m1, m2, m3 = st.columns(3)
        m1.metric("BMI", record.bmi, gauge_zone("bmi", record.bmi), delta_color="off")
        m2.metric("TyG Index", record.tyg_index, gauge_zone("tyg", record.tyg_index), delta_color="off")
        m3.metric("TG/HDL Ratio", record.tg_hdl_ratio, gauge_zone("tg_hdl", record.tg_hdl_ratio), delta_color="off")

        st.markdown(
            f"<div style='background:{risk_badge(record.risk_level)};padding:12px;border-radius:8px'>"
            f"<b>{record.risk_level}</b><br>{record.risk_description}</div>",
            unsafe_allow_html=True,
        )

        st.write("### Recommendations")
        st.markdown(record.recommendation_text)

        if st.button("Save patient record"):
            try:
                outcome = save_record(ctx, record)
            except DuplicateRecordError as exc:
                st.error(f"Record already saved: {exc}")
            except PersistError as exc:
                st.error(f"Error saving record: {exc}")
            else:
                if outcome.fallback_used:
                    st.warning(f"{ctx.store.name} unavailable ({outcome.error}); saved to this session only.")
                else:
                    st.success("Patient record saved successfully ✅")
                st.session_state.pop("assessment", None)

# -------------------------
# 2) Patient Records
# -------------------------
with tabs[1]:
    st.subheader("Patient records")

    try:
        outcome = load_records(ctx)
    except PersistError as exc:
        st.error(f"Error loading patient records: {exc}")
        outcome = None

    if outcome is not None:
        if outcome.error:
            st.warning(f"Showing session records only: {outcome.error}")
        elif outcome.pending:
            st.warning(f"{outcome.pending} records saved during an outage are only in this session.")
            if st.button(f"Push session records to {ctx.store.name}"):
                try:
                    pushed = push_local_records(ctx)
                except PersistError as exc:
                    st.error(f"Error pushing session records: {exc}")
                else:
                    st.success(f"Pushed {pushed.count} records")
                    for record_id, message in pushed.failures:
                        st.write("•", record_id, message)

        term = st.text_input("Search patients")
        records = filter_records(outcome.records, term)

        if not records:
            st.info("No patient records yet.")
        else:
            df = records_to_frame(records)
            st.dataframe(
                df[["Full Name", "Age", "Gender", "BMI", "TyG Index", "Risk Level", "Created At"]],
                use_container_width=True,
            )
            st.download_button(
                "Export CSV",
                data=export_csv(records),
                file_name="patient_records.csv",
                mime="text/csv",
            )

        sheets_url = ctx.cfg.get("SHEETS_URL", "")
        if sheets_url and ctx.store.name != "sheets" and st.button("Sync to spreadsheet"):
            target = SpreadsheetEndpoint(sheets_url, timeout=float(ctx.cfg.get("SHEETS_TIMEOUT") or 15))
            try:
                result = sync_records(ctx, target)
            except PersistError as exc:
                st.error(f"Error syncing to spreadsheet: {exc}")
            else:
                if result.count == 0 and result.ok:
                    st.warning("No patient records to sync")
                else:
                    st.success(f"Synced {result.count} records")
                for record_id, message in result.failures:
                    st.write("•", record_id, message)
            finally:
                target.close()

# -------------------------
# 3) Dashboard
# -------------------------
with tabs[2]:
    st.subheader("Risk overview (non-diagnostic)")

    try:
        records = load_records(ctx).records
    except PersistError as exc:
        st.error(f"Error loading patient records: {exc}")
        records = []

    if not records:
        st.info("No patient records yet.")
    else:
        df = records_to_frame(records)
        counts = df["Risk Level"].replace("", "Unknown").value_counts()
        st.write("### Risk levels")
        st.bar_chart(counts)

        trend = df.dropna(subset=["TyG Index"]).copy()
        trend["Created At"] = pd.to_datetime(trend["Created At"], errors="coerce", utc=True)
        trend = trend.dropna(subset=["Created At"]).sort_values("Created At")
        if not trend.empty:
            st.write("### TyG index over time")
            fig = plt.figure()
            plt.plot(trend["Created At"], trend["TyG Index"], marker="o")
            plt.axhline(RISK["tyg_low_max"], linestyle="--", color="#fbbf24")
            plt.axhline(RISK["tyg_moderate_max"], linestyle="--", color="#f87171")
            plt.xticks(rotation=30)
            st.pyplot(fig)

        st.write("### Quick insights")
        st.write(f"- Average BMI: **{df['BMI'].mean():.1f}**")
        st.write(f"- Average TyG index: **{df['TyG Index'].mean():.2f}**")
        high = (df["Risk Level"] == "High Risk").sum()
        if high:
            st.warning(f"{high} patient(s) in the high-risk range need follow-up.")
